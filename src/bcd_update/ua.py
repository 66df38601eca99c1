"""
Default resolver from a report's user-agent string to a catalog browser release.

Only the browsers the collector is routinely run in are recognised. Anything
richer can be plugged in: build_support_matrix accepts any callable with the
signature of resolve_user_agent.
"""

import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from .ranges import compare_versions, sort_versions


# Runtimes where patch releases can add features, so versions match exactly
RUNTIME_IDS_WITH_PATCH_VERSIONING = {"bun"}

# Safari releases that are backports with fewer features than their number suggests
SAFARI_BACKPORT_VERSIONS = {"4.1", "6.1", "6.2", "7.1"}

# (pattern, browser id, display name); first match wins
_BROWSER_PATTERNS = [
    (re.compile(r"YaBrowser/([\d.]+)"), "yandex", "Yandex"),
    (re.compile(r"SamsungBrowser/([\d.]+)"), "samsunginternet", "Samsung Internet"),
    (re.compile(r"(?:OPR|Opera)/([\d.]+)"), "opera", "Opera"),
    (re.compile(r"Edg(?:e|A|iOS)?/([\d.]+)"), "edge", "Edge"),
    (re.compile(r"FxiOS/([\d.]+)"), "firefox", "Firefox"),
    (re.compile(r"Firefox/([\d.]+)"), "firefox", "Firefox"),
    (re.compile(r"OculusBrowser/([\d.]+)"), "oculus", "Oculus Browser"),
    (re.compile(r"; wv\).*Chrome/([\d.]+)"), "webview", "WebView"),
    (re.compile(r"CriOS/([\d.]+)"), "chrome", "Chrome"),
    (re.compile(r"(?:Headless)?Chrome/([\d.]+)"), "chrome", "Chrome"),
    (re.compile(r"Version/([\d.]+).*Safari/"), "safari", "Safari"),
]

_ANDROID_RE = re.compile(r"Android(?: ([\d.]+))?")
_IOS_RE = re.compile(r"(?:iPhone|iPad|iPod).*? OS ([\d_]+)")
_IOS_WEBKIT_RE = re.compile(r"(?:iPhone|iPad|iPod).*AppleWebKit/")


@dataclass
class ResolvedIdentity:
    """
    Where a report belongs in the release catalog.

    in_bcd is None when the browser is not in the catalog (or could not be
    parsed at all), False when the browser is known but the release is not,
    and True when (browser_id, version) names a catalog release.
    """
    browser_id: str
    browser_name: str
    version: str
    full_version: str = ""
    in_bcd: Optional[bool] = None


UserAgentResolver = Callable[[str, Dict[str, Any]], ResolvedIdentity]


def major_version(version: str) -> str:
    return version.split(".")[0]


def major_minor_version(version: str) -> str:
    parts = version.split(".")
    minor = parts[1] if len(parts) > 1 and parts[1] else "0"
    return f"{parts[0]}.{minor}"


def parse_user_agent(user_agent: str) -> Tuple[str, str, str]:
    """
    Extract (browser_id, browser_name, full_version) from a UA string.

    Returns empty strings for the id and name when no browser is recognised.
    """
    if user_agent.startswith("!! "):
        # Runtime reports are prefixed so general UA parsers leave them alone
        runtime, _, runtime_version = user_agent[3:].partition("/")
        return runtime, runtime, runtime_version or "0"

    servo = re.search(r"Servo/([\d.]+)", user_agent)
    if servo:
        return "servo", "Servo", servo.group(1)

    browser_id, name, full_version = "", "", ""
    for pattern, pattern_id, pattern_name in _BROWSER_PATTERNS:
        match = pattern.search(user_agent)
        if match:
            browser_id, name, full_version = pattern_id, pattern_name, match.group(1)
            break

    ios = _IOS_RE.search(user_agent)
    if not browser_id and ios and _IOS_WEBKIT_RE.search(user_agent):
        browser_id, name = "webview", "WebView"
    if not browser_id:
        return "", "", ""

    android = _ANDROID_RE.search(user_agent)
    if android and browser_id != "oculus":
        browser_id += "_android"
        name += " Android"
    elif ios:
        browser_id += "_ios"
        name += " iOS"
        # iOS browsers all ship the system WebKit, versioned with the OS
        full_version = ios.group(1).replace("_", ".")

    return browser_id, name, full_version or "0"


def resolve_release(
    browser_id: str,
    browser_name: str,
    full_version: str,
    browsers: Dict[str, Any],
) -> ResolvedIdentity:
    """
    Map a parsed browser and full version onto a catalog release.

    The UA version is usually more precise than the catalog, which also skips
    uninteresting releases, so the version is matched to the release that
    sandwiches it from below: "10.1" between "10.0" and "10.2" becomes "10.0".
    A version past the newest release is accepted only if it is the same
    major (major.minor for Safari and Samsung Internet) as that release.
    """
    if browser_id in RUNTIME_IDS_WITH_PATCH_VERSIONING:
        version = full_version
    else:
        version = major_minor_version(full_version)

    identity = ResolvedIdentity(
        browser_id=browser_id,
        browser_name=browser_name,
        version=version,
        full_version=full_version,
    )
    if browser_id not in browsers:
        return identity

    identity.browser_name = browsers[browser_id].get("name", browser_name)
    identity.in_bcd = False
    releases = sort_versions(browsers[browser_id].get("releases", {}).keys())
    if not releases:
        return identity

    if browser_id == "safari" and version in SAFARI_BACKPORT_VERSIONS:
        return identity

    if browser_id in RUNTIME_IDS_WITH_PATCH_VERSIONING:
        if version in releases:
            identity.in_bcd = True
        return identity

    for current, following in zip(releases, releases[1:]):
        if compare_versions(version, current) >= 0 and compare_versions(version, following) < 0:
            identity.in_bcd = True
            identity.version = current
            return identity

    normalize = major_version
    if browser_id.startswith("safari") or browser_id == "samsunginternet_android":
        normalize = major_minor_version
    newest = releases[-1]
    if normalize(version) == normalize(newest):
        identity.in_bcd = True
        identity.version = newest
    return identity


def resolve_user_agent(user_agent: str, browsers: Dict[str, Any]) -> ResolvedIdentity:
    """Resolve a report's UA string against the browser release catalog."""
    browser_id, name, full_version = parse_user_agent(user_agent or "")
    if not browser_id:
        return ResolvedIdentity(browser_id="", browser_name="", version="")
    return resolve_release(browser_id, name, full_version, browsers)

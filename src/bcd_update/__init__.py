"""
bcd-update - Browser compatibility data updater.

Turns crowd-sourced feature-detection reports into updates to a browser
compatibility tree, skipping (and explaining) every case it cannot decide
automatically.

Modules:
    verdicts - Tri-state test verdicts and the verdict combinator
    ranges - Version ordering and the ranged-version notation
    tree - Compatibility tree lookup, walking and JSON persistence
    reports - Report loading, validation and normalization
    ua - Default user-agent to browser release resolver
    matrix - Support matrix construction and manual overrides
    inference - Range inference from per-release verdicts
    mirror - "mirror" support values and their resolution
    pipeline - Staged update decisions and write-back
    config - YAML configuration loading
    cli - Command-line interface entrypoints
"""

from . import verdicts
from . import ranges
from . import tree
from . import reports
from . import ua
from . import matrix
from . import inference
from . import mirror
from . import pipeline
from . import config
from . import cli

__version__ = "1.0.0"

"""
Curvefan: piecewise-linear fan curve control for IPMI-managed servers.
"""

import logging

__version__ = "0.1.0"

# Library code only logs; the CLI configures handlers
logging.getLogger('curvefan').addHandler(logging.NullHandler())

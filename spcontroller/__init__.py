"""
Statuspage Controller — keeps a statuspage.io page in sync with New Relic.

Open New Relic violations are mapped to component statuses through a
duration threshold table; components can be put under time-bounded
manual overrides through the admin API.
"""

__version__ = "1.0.0"

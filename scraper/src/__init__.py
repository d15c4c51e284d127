"""
Autarco scraper package.

Logs in to the My Autarco monitoring portal, fetches the current production
statistics for one site, and republishes them as a local JSON endpoint.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

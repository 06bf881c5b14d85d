"""
MediaWiki API client used for discovery, publishing and purging.
"""

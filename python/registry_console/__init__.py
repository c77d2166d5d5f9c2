"""Registry console: delete-by-date workflow and dashboard views over the registry API"""

__version__ = "1.0.0"

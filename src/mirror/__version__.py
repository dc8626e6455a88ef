"""Version information for the repository mirror.

Single source of truth for version number.
Follows PEP 440 and semantic versioning principles.
"""

__version__ = "1.2.0"
__version_info__ = tuple(int(part) for part in __version__.split("."))

# Version history:
# 1.2.0 - Archive-based full sync, single outbound call per import
# 1.1.0 - Push webhook ingress, change-set precedence for re-added files
# 1.0.0 - Initial release (tenant mirror, summary, reindex trigger)

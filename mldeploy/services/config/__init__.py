"""Configuration package (Facade).

Re-exports the public config types so callers import from a single path:

	from mldeploy.services.config import ManagementConfig

The module layout underneath (``management_config.py``, ``deploy_config.py``)
can change without touching call sites.
"""

from mldeploy.services.config.deploy_config import DeploySettingsConfig, DocumentLoaderConfig
from mldeploy.services.config.management_config import ManagementConfig

__all__ = ["DeploySettingsConfig", "DocumentLoaderConfig", "ManagementConfig"]

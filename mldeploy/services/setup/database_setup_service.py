from __future__ import annotations

import asyncio
import logging
from http import HTTPStatus
from typing import Any, Optional

from mldeploy.services.management_service import manage_path
from mldeploy.services.setup.deployment_context import DeploymentContext, DeploymentValidationError
from mldeploy.services.setup.multi_object_service import DeploymentStage, MultiObjectService, join_stage
from mldeploy.services.setup.resource_upsert_service import (
    ResourceIdentity,
    ResourceUpsertService,
    expect_status,
    unexpected_status,
)


logger = logging.getLogger(__name__)

FOREST_DELETE_MODES = ("configuration", "data")
FORESTS_PER_HOST_KEYS = ("forests-per-host", "per-host")

REBALANCER_STAGES = (
    DeploymentStage("database-rebalancer/partitions", "partitions", "partition-name"),
    DeploymentStage("database-rebalancer/rebalancer", "rebalancer", None),
    DeploymentStage("database-rebalancer/partition-queries", "partition-queries", "partition-number"),
)


class DatabaseSetupService:
    """Create, update and remove whole databases (and the forests behind them)."""

    def __init__(
        self,
        context: DeploymentContext,
        *,
        upsert: Optional[ResourceUpsertService] = None,
        multi: Optional[MultiObjectService] = None,
    ) -> None:
        self._context = context
        self._upsert = upsert or ResourceUpsertService(context)
        self._multi = multi or MultiObjectService(context, upsert=self._upsert)

    def _database_settings(self, db_type: str) -> dict[str, Any]:
        settings = self._context.settings.resolve(f"databases/{db_type}")
        if not settings.get("database-name"):
            raise DeploymentValidationError(f"Settings for {db_type} database have no 'database-name'")
        return settings

    @staticmethod
    def _database_identity(database: str) -> ResourceIdentity:
        return ResourceIdentity(kind="database", collection=manage_path("databases"), name=database)

    # -----------------
    # Forests
    # -----------------

    async def list_hosts(self) -> list[str]:
        """Names of the cluster's hosts, in the order the cluster reports them."""

        response = await self._context.management.get(manage_path("hosts"), params={"format": "json"})
        expect_status(response, HTTPStatus.OK, "Error when listing hosts")

        # Typical body: {"host-default-list": {"list-items": {"list-item": [{"nameref": "..."}]}}}
        data = response.data if isinstance(response.data, dict) else {}
        items = (data.get("host-default-list") or {}).get("list-items") or {}
        entries = items.get("list-item") or []
        if isinstance(entries, dict):
            entries = [entries]
        return [str(e["nameref"]) for e in entries if isinstance(e, dict) and e.get("nameref")]

    @staticmethod
    def _forests_per_host(directive: Any) -> int:
        raw: Any = directive
        if isinstance(directive, dict):
            raw = next((directive[k] for k in FORESTS_PER_HOST_KEYS if k in directive), None)
        try:
            count = int(raw)
        except (TypeError, ValueError) as exc:
            raise DeploymentValidationError(f"Invalid forests-per-host directive: {directive!r}") from exc
        if count <= 0:
            raise DeploymentValidationError(f"forests-per-host must be positive (got {count})")
        return count

    async def build_forests_by_host(self, settings: dict[str, Any]) -> list[str]:
        """Expand a forests-per-host directive into concrete (existing) forest names.

        The directive's count is the number of forests; forest `<database-name>-<n>` is
        placed on the cluster's hosts in turn. Forests that already exist are left as they are.
        """

        directive = settings.get("forest")
        count = self._forests_per_host(directive)
        database = settings["database-name"]
        data_directory = directive.get("data-directory") if isinstance(directive, dict) else None

        hosts = await self.list_hosts()
        if not hosts:
            raise DeploymentValidationError("Cluster reported no hosts to place forests on")

        forests: list[tuple[ResourceIdentity, dict[str, Any]]] = []
        for forest_number in range(1, count + 1):
            name = f"{database}-{forest_number}"
            payload: dict[str, Any] = {"forest-name": name, "host": hosts[(forest_number - 1) % len(hosts)]}
            if data_directory:
                payload["data-directory"] = data_directory
            identity = ResourceIdentity(kind="forest", collection=manage_path("forests"), name=name)
            forests.append((identity, payload))

        tasks = [
            # Placement of an existing forest is never changed, hence the empty allow-list.
            asyncio.create_task(self._upsert.upsert(identity, payload, allowed=()))
            for identity, payload in forests
        ]
        await join_stage(f"forests for {database}", tasks)
        return [identity.name for identity, _ in forests if identity.name]

    # -----------------
    # Databases
    # -----------------

    async def build_database(self, settings: dict[str, Any], db_type: str) -> str:
        # Databases have no update allow-list: the full settings go out on both paths.
        identity = self._database_identity(settings["database-name"])
        outcome = await self._upsert.upsert(identity, settings)
        logger.info("%s database: %s", db_type, outcome)
        return f"{db_type} database {outcome.rsplit(' ', 1)[-1]}"

    async def initialize_database(self, db_type: str) -> str:
        settings = self._database_settings(db_type)
        forest = settings.get("forest")
        if forest is not None and not isinstance(forest, list):
            forest_names = await self.build_forests_by_host(settings)
            settings = {**settings, "forest": forest_names}
        return await self.build_database(settings, db_type)

    async def remove_database(self, db_type: str, forest_delete: Optional[str] = None) -> str:
        mode = (forest_delete or "").strip().lower()
        if mode and mode not in FOREST_DELETE_MODES:
            raise DeploymentValidationError("Only configuration and data allowed for removeForest parameter")

        settings = self._database_settings(db_type)
        identity = self._database_identity(settings["database-name"])

        if not await self._upsert.exists(identity):
            logger.info("%s database already removed", db_type)
            return "Database already removed"

        logger.info("Removing %s database (forest-delete=%s)", db_type, mode or "none")
        response = await self._context.management.remove(
            identity.endpoint,
            params={"forest-delete": mode} if mode else None,
        )
        expect_status(response, HTTPStatus.NO_CONTENT, f"Error when deleting {db_type} database")
        return f"{db_type} database removed"

    async def get_database_properties(self, database: str) -> Optional[dict[str, Any]]:
        """Return the database's properties, or None when the database does not exist."""

        response = await self._context.management.get(
            manage_path("databases", database, "properties"),
            params={"format": "json"},
        )
        if response.found:
            if not isinstance(response.data, dict):
                raise unexpected_status(response, f"Unreadable database properties at {database}")
            return dict(response.data)
        if response.not_found:
            return None
        raise unexpected_status(response, f"Error when fetching database properties at {database}")

    async def database_operation(self, operation: str, database: str) -> str:
        if not operation or not operation.strip():
            raise DeploymentValidationError("operation must be provided")

        response = await self._context.management.post(
            manage_path("databases", database),
            body={"operation": operation},
        )
        expect_status(
            response,
            HTTPStatus.OK,
            f"Error when issuing database operation {operation} at {database}",
        )
        return database

    async def initialize_rebalancer(self, db_type: str) -> str:
        settings = self._database_settings(db_type)
        schema_database = settings.get("schema-database")
        if not schema_database:
            raise DeploymentValidationError(f"Settings for {db_type} database have no 'schema-database'")

        outcome = ""
        for stage in REBALANCER_STAGES:
            outcome = await self._multi.deploy_stage(stage, database=schema_database)
        return outcome

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional
from urllib.parse import quote

from mldeploy.services.management_service import manage_path
from mldeploy.services.setup.database_setup_service import DatabaseSetupService
from mldeploy.services.setup.deployment_context import DeploymentContext, DeploymentValidationError
from mldeploy.services.setup.multi_object_service import (
    NOTHING_TO_DO,
    DeploymentStage,
    MultiObjectService,
    join_stage,
)
from mldeploy.services.setup.resource_upsert_service import (
    ResourceIdentity,
    ResourceUpsertService,
    apply_allow_list,
    unexpected_status,
)


logger = logging.getLogger(__name__)

LOAD_DEFAULT_CPF_PIPELINES = "load-default-cpf-pipelines"

TRIGGERS_STAGE = DeploymentStage("triggers", "triggers", "name")
CPF_PIPELINES_STAGE = DeploymentStage("cpf/pipelines", "pipelines", "pipeline-name")
CPF_DOMAINS_STAGE = DeploymentStage("cpf/domains", "domains", "domain-name")
# cpf/cpf-configs (identifier domain-name) stays disabled.
ALERT_CONFIGS_STAGE = DeploymentStage("alerts/configs", "alert/configs", "uri", query_param="uri")

ALERT_ACTIONS_NAMESPACE = "alerts/actions"
ALERT_RULES_NAMESPACE = "alerts/rules"
ALERT_ACTION_PROPERTIES = ("name", "description", "module-db", "module-root", "module", "options")
ALERT_RULE_PROPERTIES = (
    "name",
    "description",
    "user-id",
    "query",
    "action-name",
    "external-security-id",
    "user-name",
    "options",
)


class DeploymentService:
    """Triggers, CPF and alerting deployments.

    Each deployment is a fixed sequence of stages; a stage starts only after the
    previous one fully settled, and whatever it resolved (the triggers database
    name, for instance) is handed to the next stage explicitly.
    """

    def __init__(
        self,
        context: DeploymentContext,
        *,
        databases: Optional[DatabaseSetupService] = None,
        multi: Optional[MultiObjectService] = None,
        upsert: Optional[ResourceUpsertService] = None,
    ) -> None:
        self._context = context
        self._upsert = upsert or ResourceUpsertService(context)
        self._multi = multi or MultiObjectService(context, upsert=self._upsert)
        self._databases = databases or DatabaseSetupService(context, upsert=self._upsert, multi=self._multi)

    async def _triggers_database(self, database: str) -> str:
        properties = await self._databases.get_database_properties(database)
        if properties is None:
            raise DeploymentValidationError(f"Database not found: {database}")
        triggers_database = properties.get("triggers-database")
        if not triggers_database:
            raise DeploymentValidationError(f"Database {database} has no triggers-database")
        return str(triggers_database)

    # -----------------
    # Triggers
    # -----------------

    async def deploy_triggers(self, database: str) -> str:
        logger.info("Deploying triggers")
        triggers_database = await self._triggers_database(database)
        return await self._multi.deploy_stage(TRIGGERS_STAGE, database=triggers_database)

    # -----------------
    # CPF
    # -----------------

    async def load_default_cpf_pipelines(self, triggers_database: str) -> None:
        response = await self._context.management.post(
            manage_path("databases", triggers_database, "pipelines"),
            body={"operation": LOAD_DEFAULT_CPF_PIPELINES},
            params={"format": "json"},
        )
        if not 200 <= response.status < 300:
            raise unexpected_status(response, f"Error when loading default CPF pipelines at {triggers_database}")

    async def deploy_cpf(self, database: str) -> str:
        logger.info("Deploying CPF")
        triggers_database = await self._triggers_database(database)
        await self.load_default_cpf_pipelines(triggers_database)
        await self._multi.deploy_stage(CPF_PIPELINES_STAGE, database=triggers_database)
        await self._multi.deploy_stage(CPF_DOMAINS_STAGE, database=triggers_database)
        return "CPF deployed"

    # -----------------
    # Alerts
    # -----------------

    @staticmethod
    def _require(settings: dict[str, Any], item: str, *fields: str) -> None:
        missing = [f for f in fields if not settings.get(f)]
        if missing:
            raise DeploymentValidationError(f"Alert definition {item!r} is missing {', '.join(missing)}")

    def _alert_definitions(self, namespace: str, *fields: str) -> list[dict[str, Any]]:
        definitions = []
        for item in self._context.settings.list_items(namespace):
            settings = self._context.settings.resolve(f"{namespace}/{item}")
            self._require(settings, item, *fields)
            definitions.append(settings)
        return definitions

    async def _deploy_alert_action(self, database: str, settings: dict[str, Any]) -> str:
        identity = ResourceIdentity(
            kind="alert action",
            collection=manage_path("databases", database, "alert/actions"),
            name=str(settings["name"]),
            params={"uri": str(settings["alert-uri"])},
            database=database,
        )
        # Only the supported properties are sent, on create as well as on update.
        payload = apply_allow_list(ALERT_ACTION_PROPERTIES, settings)
        if await self._upsert.exists(identity):
            return await self._upsert.update(identity, payload)
        return await self._upsert.create(identity, payload)

    async def _deploy_alert_rule(self, database: str, settings: dict[str, Any]) -> str:
        action = quote(str(settings["action-name"]), safe="")
        identity = ResourceIdentity(
            kind="alert rule",
            collection=manage_path("databases", database, "alert/actions", action, "rules"),
            name=str(settings["name"]),
            params={"uri": str(settings["alert-uri"])},
            database=database,
        )
        # Create sends the full definition, update only the supported properties.
        return await self._upsert.upsert(identity, settings, allowed=ALERT_RULE_PROPERTIES)

    async def deploy_alert_actions(self, database: str) -> str:
        definitions = self._alert_definitions(ALERT_ACTIONS_NAMESPACE, "name", "alert-uri")
        if not definitions:
            return NOTHING_TO_DO
        tasks = [asyncio.create_task(self._deploy_alert_action(database, s)) for s in definitions]
        return await join_stage(ALERT_ACTIONS_NAMESPACE, tasks)

    async def deploy_alert_rules(self, database: str) -> str:
        definitions = self._alert_definitions(ALERT_RULES_NAMESPACE, "name", "alert-uri", "action-name")
        if not definitions:
            return NOTHING_TO_DO
        tasks = [asyncio.create_task(self._deploy_alert_rule(database, s)) for s in definitions]
        return await join_stage(ALERT_RULES_NAMESPACE, tasks)

    async def deploy_alerts(self, database: str) -> str:
        logger.info("Deploying alerts")
        await self._multi.deploy_stage(ALERT_CONFIGS_STAGE, database=database)
        await self.deploy_alert_actions(database)
        await self.deploy_alert_rules(database)
        return "Alerts deployed"

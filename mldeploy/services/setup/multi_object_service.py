from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from mldeploy.services.management_service import manage_path
from mldeploy.services.setup.deployment_context import DeploymentContext, DeploymentValidationError
from mldeploy.services.setup.resource_upsert_service import ResourceIdentity, ResourceUpsertService


logger = logging.getLogger(__name__)

NOTHING_TO_DO = "Nothing to do"


@dataclass(frozen=True)
class DeploymentStage:
    """One kind of sub-resource deployed under an owning database.

    `namespace` is where definitions live in the settings ("cpf/pipelines"), `target`
    the collection path under /databases/{db} ("pipelines"). `id_field` names the
    identifying property (None for singleton stages such as the rebalancer). With a
    `query_param`, items are addressed as `<target>?<query_param>=<id value>` instead
    of `<target>/<id value>`.
    """

    namespace: str
    target: str
    id_field: Optional[str]
    query_param: Optional[str] = None
    allowed: Optional[tuple[str, ...]] = None


class MultiObjectService:
    """Runs the upsert for every definition of a stage concurrently and joins them."""

    def __init__(self, context: DeploymentContext, *, upsert: Optional[ResourceUpsertService] = None) -> None:
        self._context = context
        self._upsert = upsert or ResourceUpsertService(context)

    def _identity(self, stage: DeploymentStage, database: str, settings: dict[str, Any]) -> ResourceIdentity:
        collection = manage_path("databases", database, stage.target)
        if stage.id_field is None:
            return ResourceIdentity(kind=stage.target, collection=collection, database=database)

        value = settings.get(stage.id_field)
        if value is None or str(value) == "":
            raise DeploymentValidationError(
                f"Definition under {stage.namespace!r} is missing its identifying field {stage.id_field!r}"
            )

        if stage.query_param:
            return ResourceIdentity(
                kind=stage.target,
                collection=collection,
                params={stage.query_param: str(value)},
                database=database,
            )
        return ResourceIdentity(kind=stage.target, collection=collection, name=str(value), database=database)

    def _definitions(self, stage: DeploymentStage, skip: Iterable[str]) -> list[dict[str, Any]]:
        skipped = {str(s) for s in skip}
        definitions = []
        for item in self._context.settings.list_items(stage.namespace):
            settings = self._context.settings.resolve(f"{stage.namespace}/{item}")
            if stage.id_field is not None and str(settings.get(stage.id_field)) in skipped:
                logger.info("Skipping %s %s (already handled)", stage.namespace, settings.get(stage.id_field))
                continue
            definitions.append(settings)
        return definitions

    async def deploy_stage(
        self,
        stage: DeploymentStage,
        *,
        database: str,
        skip: Iterable[str] = (),
    ) -> str:
        """Upsert every definition registered under `stage.namespace` into `database`.

        All items are issued at once and every one is allowed to settle; nothing is
        cancelled when a sibling fails. The first failure (in completion order) is
        re-raised once all of them have settled.
        """

        definitions = self._definitions(stage, skip)
        if not definitions:
            logger.info("%s: nothing to deploy", stage.namespace)
            return NOTHING_TO_DO

        planned = [(self._identity(stage, database, settings), settings) for settings in definitions]
        logger.info("%s: deploying %d item(s) to %s", stage.namespace, len(planned), database)

        tasks = [
            asyncio.create_task(self._upsert.upsert(identity, settings, allowed=stage.allowed))
            for identity, settings in planned
        ]
        return await join_stage(stage.namespace, tasks)


async def join_stage(name: str, tasks: list["asyncio.Task[Any]"]) -> str:
    """Wait for every task; re-raise the first failure, log the rest."""

    first_error: Optional[BaseException] = None
    failed = 0
    for fut in asyncio.as_completed(tasks):
        try:
            await fut
        except Exception as exc:
            failed += 1
            if first_error is None:
                first_error = exc
            else:
                logger.error("%s: additional failure ignored: %s", name, exc)

    if first_error is not None:
        logger.error("%s: %d of %d item(s) failed", name, failed, len(tasks))
        raise first_error

    logger.info("%s: %d item(s) deployed", name, len(tasks))
    return f"{name} initialized"

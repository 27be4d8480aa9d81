"""
Tests for database create/update/remove, forest expansion and the rebalancer stages.
"""

import pytest

from conftest import error_body
from mldeploy.services.management_service import ManagementServiceError
from mldeploy.services.setup.deployment_context import DeploymentValidationError
from mldeploy.services.setup.database_setup_service import DatabaseSetupService

DATABASES = "/manage/LATEST/databases"
CONTENT = f"{DATABASES}/app-content"
HOSTS = "/manage/LATEST/hosts"
FORESTS = "/manage/LATEST/forests"


def hosts_body(*names):
    return {
        "host-default-list": {
            "list-items": {
                "list-count": {"value": len(names)},
                "list-item": [{"idref": str(i), "nameref": n} for i, n in enumerate(names)],
            }
        }
    }


@pytest.fixture
def databases(context):
    return DatabaseSetupService(context)


@pytest.fixture
def content_settings(settings):
    settings.definitions["databases/content"] = {
        "database-name": "app-content",
        "forest": ["app-content-1"],
        "schema-database": "app-schemas",
        "triggers-database": "app-triggers",
    }
    return settings


@pytest.mark.asyncio
async def test_initialize_creates_missing_database(management, content_settings, databases):
    management.on("GET", CONTENT, 404)
    management.on("POST", DATABASES, 201)

    assert await databases.initialize_database("content") == "content database created"

    post = management.calls_to("POST", DATABASES)[0]
    assert post.body == content_settings.definitions["databases/content"]


@pytest.mark.asyncio
async def test_initialize_updates_existing_database_with_full_settings(management, content_settings, databases):
    management.on("GET", CONTENT, 200)
    management.on("PUT", f"{CONTENT}/properties", 204)

    assert await databases.initialize_database("content") == "content database updated"

    put = management.calls_to("PUT")[0]
    assert put.body == content_settings.definitions["databases/content"]
    assert management.calls_to("POST") == []


@pytest.mark.asyncio
async def test_initialize_expands_forests_per_host_before_building_database(management, settings, databases):
    settings.definitions["databases/content"] = {"database-name": "app-content", "forest": {"per-host": 2}}
    management.on("GET", HOSTS, 200, hosts_body("h1", "h2"))
    management.on("GET", f"{FORESTS}/app-content-1", 404)
    management.on("GET", f"{FORESTS}/app-content-2", 200)
    management.on("POST", FORESTS, 201)
    management.on("GET", CONTENT, 404)
    management.on("POST", DATABASES, 201)

    await databases.initialize_database("content")

    # Existing forests are left alone; the missing one is created on its host.
    forest_posts = management.calls_to("POST", FORESTS)
    assert [c.body for c in forest_posts] == [{"forest-name": "app-content-1", "host": "h1"}]
    assert management.calls_to("PUT") == []

    db_post = management.calls_to("POST", DATABASES)[0]
    assert db_post.body["forest"] == ["app-content-1", "app-content-2"]
    assert management.calls.index(db_post) > management.calls.index(forest_posts[0])
    # The settings themselves are not modified.
    assert settings.definitions["databases/content"]["forest"] == {"per-host": 2}


@pytest.mark.asyncio
async def test_forests_are_placed_on_hosts_in_turn(management, settings, databases):
    settings.definitions["databases/content"] = {
        "database-name": "app-content",
        "forest": {"forests-per-host": 3, "data-directory": "/data"},
    }
    management.on("GET", HOSTS, 200, hosts_body("node-a", "node-b"))
    for name in ("app-content-1", "app-content-2", "app-content-3"):
        management.on("GET", f"{FORESTS}/{name}", 404)
    management.on("POST", FORESTS, 201)
    management.on("GET", CONTENT, 200)
    management.on("PUT", f"{CONTENT}/properties", 204)

    await databases.initialize_database("content")

    assert management.calls_to("PUT")[0].body["forest"] == ["app-content-1", "app-content-2", "app-content-3"]
    placed = {c.body["forest-name"]: c.body["host"] for c in management.calls_to("POST", FORESTS)}
    assert placed == {"app-content-1": "node-a", "app-content-2": "node-b", "app-content-3": "node-a"}
    assert {c.body["data-directory"] for c in management.calls_to("POST", FORESTS)} == {"/data"}


@pytest.mark.asyncio
async def test_invalid_forests_per_host_directive(management, settings, databases):
    settings.definitions["databases/content"] = {"database-name": "app-content", "forest": {"per-host": "many"}}

    with pytest.raises(DeploymentValidationError):
        await databases.initialize_database("content")

    assert management.calls == []


@pytest.mark.asyncio
async def test_remove_rejects_unknown_forest_delete_mode_before_any_call(management, content_settings, databases):
    with pytest.raises(DeploymentValidationError):
        await databases.remove_database("content", "invalid")

    assert management.calls == []


@pytest.mark.asyncio
async def test_remove_without_mode_sends_no_forest_delete(management, content_settings, databases):
    management.on("GET", CONTENT, 200)
    management.on("DELETE", CONTENT, 204)

    assert await databases.remove_database("content") == "content database removed"

    assert management.calls_to("DELETE")[0].params is None


@pytest.mark.asyncio
@pytest.mark.parametrize("mode", ["data", "DATA", "Configuration"])
async def test_remove_with_mode_sends_forest_delete(management, content_settings, databases, mode):
    management.on("GET", CONTENT, 200)
    management.on("DELETE", CONTENT, 204)

    await databases.remove_database("content", mode)

    assert management.calls_to("DELETE")[0].params == {"forest-delete": mode.lower()}


@pytest.mark.asyncio
async def test_remove_missing_database_is_not_an_error(management, content_settings, databases):
    management.on("GET", CONTENT, 404)

    assert await databases.remove_database("content", "data") == "Database already removed"
    assert management.calls_to("DELETE") == []


@pytest.mark.asyncio
async def test_remove_with_unexpected_delete_status_fails(management, content_settings, databases):
    management.on("GET", CONTENT, 200)
    management.on("DELETE", CONTENT, 400, error_body("cannot delete"))

    with pytest.raises(ManagementServiceError) as err:
        await databases.remove_database("content")

    assert err.value.status_code == 400
    assert err.value.server_message == "cannot delete"


@pytest.mark.asyncio
async def test_get_properties(management, databases):
    management.on("GET", f"{CONTENT}/properties", 200, {"triggers-database": "app-triggers"})

    assert await databases.get_database_properties("app-content") == {"triggers-database": "app-triggers"}
    assert management.calls[0].params == {"format": "json"}


@pytest.mark.asyncio
async def test_get_properties_of_missing_database_is_none(management, databases):
    management.on("GET", f"{CONTENT}/properties", 404)

    assert await databases.get_database_properties("app-content") is None


@pytest.mark.asyncio
async def test_get_properties_unexpected_status(management, databases):
    management.on("GET", f"{CONTENT}/properties", 503)

    with pytest.raises(ManagementServiceError):
        await databases.get_database_properties("app-content")


@pytest.mark.asyncio
async def test_get_properties_with_non_json_body_fails(management, databases):
    management.on("GET", f"{CONTENT}/properties", 200, "<html>proxy</html>")

    with pytest.raises(ManagementServiceError) as err:
        await databases.get_database_properties("app-content")

    assert err.value.status_code == 200
    assert err.value.server_message == "<html>proxy</html>"


@pytest.mark.asyncio
async def test_database_operation(management, databases):
    management.on("POST", CONTENT, 200)

    assert await databases.database_operation("clear-database", "app-content") == "app-content"
    assert management.calls[0].body == {"operation": "clear-database"}


@pytest.mark.asyncio
async def test_database_operation_failure(management, databases):
    management.on("POST", CONTENT, 400, error_body("unknown operation"))

    with pytest.raises(ManagementServiceError):
        await databases.database_operation("explode", "app-content")


@pytest.mark.asyncio
async def test_rebalancer_stages_run_in_order_against_schema_database(management, content_settings, databases):
    schemas = f"{DATABASES}/app-schemas"
    content_settings.definitions.update(
        {
            "database-rebalancer/partitions/p1": {"partition-name": "p1"},
            "database-rebalancer/partitions/p2": {"partition-name": "p2"},
            "database-rebalancer/rebalancer/rebalancer": {"enabled": True},
            "database-rebalancer/partition-queries/q1": {"partition-number": 1, "query": {}},
        }
    )
    management.on("GET", f"{schemas}/partitions/p1", 404)
    management.on("GET", f"{schemas}/partitions/p2", 404)
    management.on("POST", f"{schemas}/partitions", 201)
    management.on("GET", f"{schemas}/rebalancer", 200)
    management.on("PUT", f"{schemas}/rebalancer/properties", 204)
    management.on("GET", f"{schemas}/partition-queries/1", 404)
    management.on("POST", f"{schemas}/partition-queries", 201)

    await databases.initialize_rebalancer("content")

    stages = [c.endpoint.split("/")[5] for c in management.calls]
    first_rebalancer = stages.index("rebalancer")
    first_query = stages.index("partition-queries")
    assert set(stages[:first_rebalancer]) == {"partitions"}
    assert set(stages[first_rebalancer:first_query]) == {"rebalancer"}
    assert set(stages[first_query:]) == {"partition-queries"}

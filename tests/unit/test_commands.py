"""
Unit tests for the boundary commands.

Tests cover:
- Dispatch by identifier
- Unknown identifiers
- Configuration commands
"""

import asyncio
import json
import time

import pytest

from craft.appdata_server.api import AppDataCommands, run_blocking
from craft.appdata_server.appconfig import AppConfig, ConfigCell, FeaturesConfig
from craft.appdata_server.entity import EntityStore
from craft.appdata_server.errors import DecodingError, NotFoundError, ValidationError
from craft.appdata_server.registry import EntityRegistry
from craft.appdata_server.samples import SAMPLE_ENTITIES

GRACE = {"id": 3, "name": "Grace", "email": "grace@example.com", "age": 45, "is_active": False}


@pytest.fixture
def commands(kv):
    """Commands over a registry with AppConfig and the sample types."""
    registry = EntityRegistry()
    cell = ConfigCell(kv)
    registry.register(AppConfig, store=cell)
    for entity_cls in SAMPLE_ENTITIES:
        registry.register(entity_cls, store=EntityStore(entity_cls, kv))
    cell.init()
    return AppDataCommands(registry, cell)


class TestRecordCommands:
    """Tests for record commands."""

    @pytest.mark.asyncio
    async def test_list_identifiers(self, commands):
        """Identifiers are sorted."""
        assert await commands.list_identifiers() == [
            "AppConfig",
            "ProductConfig",
            "SystemSettings",
            "UserProfile",
        ]

    @pytest.mark.asyncio
    async def test_list_schemas_matches_ids(self, commands):
        """Schemas follow identifier order."""
        schemas = await commands.list_schemas()

        assert [s["title"] for s in schemas] == [
            "Application Configuration",
            "Product Config",
            "System Settings",
            "User Profile",
        ]

    @pytest.mark.asyncio
    async def test_save_get_remove(self, commands):
        """Record lifecycle through the commands."""
        key = await commands.save_record("UserProfile", json.dumps(GRACE).encode())
        assert key == 3
        assert await commands.exists_record("UserProfile", 3) is True
        assert json.loads(await commands.get_record("UserProfile", 3)) == GRACE

        await commands.remove_record("UserProfile", 3)

        assert await commands.exists_record("UserProfile", 3) is False
        assert await commands.get_record("UserProfile", 3) is None

    @pytest.mark.asyncio
    async def test_find_next_key(self, commands):
        """Next key skips saved records."""
        await commands.save_record("UserProfile", json.dumps({**GRACE, "id": 0}).encode())

        assert await commands.find_next_key("UserProfile", 0) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "call",
        [
            lambda c: c.get_schema("Missing"),
            lambda c: c.get_record("Missing", 1),
            lambda c: c.save_record("Missing", b"{}"),
            lambda c: c.remove_record("Missing", 1),
            lambda c: c.exists_record("Missing", 1),
            lambda c: c.find_next_key("Missing", 0),
            lambda c: c.export_records("Missing"),
            lambda c: c.import_records("Missing", b"{}"),
        ],
    )
    async def test_unknown_id_raises(self, commands, call):
        """Every record command rejects unknown identifiers."""
        with pytest.raises(NotFoundError):
            await call(commands)

    @pytest.mark.asyncio
    async def test_invalid_payload(self, commands):
        """Invalid payloads surface as DecodingError."""
        with pytest.raises(DecodingError):
            await commands.save_record("UserProfile", b'{"id": 1}')

    @pytest.mark.asyncio
    async def test_export_import(self, commands):
        """An export document restores removed records."""
        await commands.save_record("UserProfile", json.dumps(GRACE).encode())
        document = await commands.export_records("UserProfile")
        await commands.remove_record("UserProfile", 3)

        assert await commands.import_records("UserProfile", document) == 1
        assert json.loads(await commands.get_record("UserProfile", 3)) == GRACE


class TestConfigCommands:
    """Tests for configuration commands."""

    @pytest.mark.asyncio
    async def test_get_config(self, commands):
        """The initial config is the default."""
        assert await commands.get_config() == AppConfig.default()

    @pytest.mark.asyncio
    async def test_save_config_from_dict(self, commands):
        """A camelCase dict is validated and published."""
        config = await commands.save_config(
            {
                "logging": {"level": "Warn", "fileLogging": False},
                "features": {"darkMode": True, "maxConcurrent": 12},
            }
        )

        assert config.features.max_concurrent == 12
        assert await commands.get_config() == config

    @pytest.mark.asyncio
    async def test_save_config_invalid(self, commands):
        """Out of range values raise ValidationError and change nothing."""
        with pytest.raises(ValidationError) as exc_info:
            await commands.save_config(
                {
                    "logging": {"level": "Info", "fileLogging": False},
                    "features": {"darkMode": False, "maxConcurrent": 64},
                }
            )

        assert any("maxConcurrent" in e for e in exc_info.value.errors)
        assert await commands.get_config() == AppConfig.default()

    @pytest.mark.asyncio
    async def test_save_config_unvalidated_instance(self, commands):
        """An AppConfig built without validation is rejected."""
        current = await commands.get_config()
        features = FeaturesConfig.model_construct(dark_mode=True, max_concurrent=999)

        with pytest.raises(ValidationError):
            await commands.save_config(current.model_copy(update={"features": features}))

        assert await commands.get_config() is current

    @pytest.mark.asyncio
    async def test_remove_config_record_refused(self, commands):
        """The AppConfig record cannot be removed through the commands."""
        with pytest.raises(ValidationError):
            await commands.remove_record("AppConfig", 0)

        assert await commands.exists_record("AppConfig", 0) is True

    @pytest.mark.asyncio
    async def test_import_config_publishes(self, commands):
        """Importing an AppConfig document updates the live config."""
        document = {
            "store_name": "AppConfig",
            "version": 1,
            "records": [
                {
                    "logging": {"level": "Error", "file_logging": False},
                    "features": {"dark_mode": True, "max_concurrent": 3},
                }
            ],
        }

        assert await commands.import_records("AppConfig", json.dumps(document).encode()) == 1

        config = await commands.get_config()
        assert config.features.max_concurrent == 3
        assert config.logging.level.value == "Error"

    @pytest.mark.asyncio
    async def test_reload_config(self, commands):
        """reload_config returns the stored value."""
        assert await commands.reload_config() == AppConfig.default()

    @pytest.mark.asyncio
    async def test_config_schema(self, commands):
        """The config schema is AppConfig's."""
        assert await commands.get_config_schema() == AppConfig.schema_description()


class TestRunBlocking:
    """Tests for run_blocking."""

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_stop_work(self):
        """Cancelling the awaiting task lets the worker finish."""
        started = asyncio.Event()
        loop = asyncio.get_running_loop()
        done = []

        def work():
            loop.call_soon_threadsafe(started.set)
            time.sleep(0.1)
            done.append(True)

        task = asyncio.create_task(run_blocking(work))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        await asyncio.sleep(0.3)
        assert done == [True]

    @pytest.mark.asyncio
    async def test_abandoned_failure_is_logged(self, caplog):
        """A worker that fails after its caller gave up is logged, not lost."""
        started = asyncio.Event()
        loop = asyncio.get_running_loop()

        def work():
            loop.call_soon_threadsafe(started.set)
            time.sleep(0.1)
            raise RuntimeError("disk vanished")

        task = asyncio.create_task(run_blocking(work))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        await asyncio.sleep(0.3)
        assert "Abandoned store call failed: disk vanished" in caplog.text

"""Integration tests: versions and migrations survive a process restart.

Each test builds a YAML-backed manager, writes through it, then builds a
fresh manager over the same data directory and reads everything back.
"""

import pytest

pytestmark = pytest.mark.integration


@pytest.fixture
def engine_config(tmp_path):
    from templar.config_manager import EngineConfig

    return EngineConfig(
        data_dir=str(tmp_path / "data"),
        audit_log=str(tmp_path / "audit" / "events.jsonl"),
        lock_timeout_seconds=1.0,
    )


class TestReload:
    """Test state reloaded from disk matches what was written."""

    def test_versions_survive_reload(self, engine_config, dep):
        from templar.version_manager import create_version_manager
        from templar.versioning.models import Actor, Classification, Compatibility

        first = create_version_manager(engine_config)
        first.create_version("base", "1.0.0", author="alice")
        created = first.create_version(
            "widget",
            "1.0.0",
            author="alice",
            actor=Actor("alice", Classification.SECRET),
            changelog="Initial",
            tags=["ui", "form"],
            dependencies=[dep("base", "^1.0.0")],
            compatibility=Compatibility(frameworks=frozenset({"react"}), runtime_version_range=">=18.0.0"),
        )
        first.deprecate_version("base", "1.0.0")

        second = create_version_manager(engine_config)

        assert second.list_templates() == ["base", "widget"]
        assert second.get_version_history("widget", "1.0.0") == created
        assert second.get_versions("base") == []
        assert second.get_version_history("base", "1.0.0").deprecated

    def test_migrations_survive_reload(self, engine_config):
        from templar.version_manager import create_version_manager
        from templar.versioning.models import Transformation

        first = create_version_manager(engine_config)
        first.create_version("widget", "1.0.0", author="alice")
        first.create_version("widget", "2.0.0", author="alice")
        migration = first.create_migration(
            "widget",
            "1.0.0",
            "2.0.0",
            transformations=[
                Transformation("rename", "oldName", "newName"),
                Transformation("add", "", "<footer/>", condition=r"<main>"),
            ],
            warnings=["Review custom slots"],
        )

        second = create_version_manager(engine_config)
        outcome = second.migrate_to_latest("widget", "<main>oldName</main>", "1.0.0")

        assert second.get_migrations("widget") == [migration]
        assert outcome.content == "<main>newName</main>\n<footer/>"
        assert outcome.warnings == ["Review custom slots"]

    def test_condition_still_gates_after_reload(self, engine_config):
        """Test a reloaded migration skips its transformation when the condition is false."""
        from templar.version_manager import create_version_manager
        from templar.versioning.models import Transformation

        first = create_version_manager(engine_config)
        first.create_version("widget", "1.0.0", author="alice")
        first.create_version("widget", "1.1.0", author="alice")
        migration = first.create_migration(
            "widget",
            "1.0.0",
            "1.1.0",
            transformations=[Transformation("replace", "foo", "bar", condition="enable")],
            migration_script="scripts/widget_1_1.py",
        )
        before = first.apply_migrations("widget", "foo", [migration.id]).content

        second = create_version_manager(engine_config)
        reloaded = second.get_migrations("widget")[0]

        assert before == "foo"
        assert second.apply_migrations("widget", "foo", [migration.id]).content == "foo"
        assert second.apply_migrations("widget", "foo enable", [migration.id]).content == "bar enable"
        assert reloaded.migration_script == "scripts/widget_1_1.py"

    def test_callable_condition_never_reaches_disk(self, engine_config, tmp_path):
        from templar.version_manager import create_version_manager
        from templar.versioning.models import Transformation

        manager = create_version_manager(engine_config)
        manager.create_version("widget", "1.0.0", author="alice")
        manager.create_version("widget", "1.1.0", author="alice")

        with pytest.raises(ValueError):
            manager.create_migration(
                "widget",
                "1.0.0",
                "1.1.0",
                transformations=[Transformation("replace", "foo", "bar", condition=lambda c: True)],
            )

        assert not (tmp_path / "data" / "widget.migrations.yaml").exists()
        assert create_version_manager(engine_config).get_migrations("widget") == []

    def test_audit_log_accumulates_across_managers(self, engine_config):
        """Test both managers append to the same JSON lines file."""
        from templar.version_manager import create_version_manager

        create_version_manager(engine_config).create_version("widget", "1.0.0", author="alice")
        manager = create_version_manager(engine_config)
        manager.deprecate_version("widget", "1.0.0")

        events = manager.audit_sink.read_events()

        assert [e["event_type"] for e in events] == ["VERSION_CREATED", "VERSION_DEPRECATED"]
        assert all(e["template_id"] == "widget" for e in events)

    def test_failed_write_leaves_disk_unchanged(self, engine_config):
        """Test a cancelled write raises and the reloaded state is untouched."""
        import threading

        from templar.version_manager import create_version_manager
        from templar.versioning.errors import PersistenceFailure

        create_version_manager(engine_config).create_version("widget", "1.0.0", author="alice")

        cancel = threading.Event()
        cancel.set()
        cancelled = create_version_manager(engine_config, cancel_event=cancel)
        with pytest.raises(PersistenceFailure):
            cancelled.create_version("widget", "1.1.0", author="alice")

        assert cancelled.get_version_history("widget", "1.1.0") is None
        fresh = create_version_manager(engine_config)
        assert [r.version for r in fresh.get_versions("widget")] == ["1.0.0"]

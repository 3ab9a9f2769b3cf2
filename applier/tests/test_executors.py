"""
Executor contracts per action kind: idempotence checks, apply, and
"already absent is fine" behaviour.
"""

import pytest

from sysconf_applier.backends.registry import parse_registry_path
from sysconf_applier.errors import (
    AccessDeniedError,
    ErrorCode,
    ExternalCommandFailed,
    InvalidTargetError,
)
from sysconf_applier.executors import PartialFailure
from sysconf_applier.models import (
    ActionKind,
    Plan,
    ValueType,
    delete_path,
    delete_registry_key,
    ensure_directory,
    remove_package,
    run_external_command,
    set_registry_value,
    stop_process,
)
from sysconf_applier.report import Outcome
from sysconf_applier.runner import execute

KEY = "HKCU\\Software\\Policies\\Microsoft\\Windows\\WindowsCopilot"


class TestSetRegistryValue:
    def test_missing_key_not_satisfied(self, executors):
        ex = executors[ActionKind.set_registry_value]
        assert not ex.is_satisfied(set_registry_value(KEY, "TurnOffWindowsCopilot", 1))

    def test_apply_creates_intermediate_keys(self, executors, registry):
        ex = executors[ActionKind.set_registry_value]
        action = set_registry_value(KEY, "TurnOffWindowsCopilot", 1)
        ex.apply(action)
        assert registry.key_exists(parse_registry_path("HKCU\\Software\\Policies"))
        assert registry.key_exists(parse_registry_path(KEY))
        assert ex.is_satisfied(action)

    def test_idempotent(self, executors, registry):
        ex = executors[ActionKind.set_registry_value]
        action = set_registry_value(KEY, "TurnOffWindowsCopilot", 1)
        ex.apply(action)
        writes = registry.writes
        assert ex.is_satisfied(action)
        assert registry.writes == writes

    def test_wrong_data_not_satisfied(self, executors):
        ex = executors[ActionKind.set_registry_value]
        ex.apply(set_registry_value(KEY, "TurnOffWindowsCopilot", 0))
        assert not ex.is_satisfied(set_registry_value(KEY, "TurnOffWindowsCopilot", 1))

    def test_type_mismatch_not_satisfied(self, executors):
        """Same data stored as a string is not the desired dword."""
        ex = executors[ActionKind.set_registry_value]
        ex.apply(set_registry_value(KEY, "Flag", "1", ValueType.string))
        assert not ex.is_satisfied(set_registry_value(KEY, "Flag", 1, ValueType.dword))

    def test_access_denied_propagates_as_permission_error(self, executors, registry):
        registry.denied.add(("HKLM", "software\\policies\\x"))
        ex = executors[ActionKind.set_registry_value]
        with pytest.raises(PermissionError):
            ex.apply(set_registry_value("HKLM\\SOFTWARE\\Policies\\X", "Flag", 1))

    def test_malformed_path(self, executors):
        ex = executors[ActionKind.set_registry_value]
        with pytest.raises(InvalidTargetError):
            ex.is_satisfied(set_registry_value("HKXX\\Software\\X", "Flag", 1))

    def test_value_under_hive_root_rejected(self, executors):
        ex = executors[ActionKind.set_registry_value]
        with pytest.raises(InvalidTargetError):
            ex.apply(set_registry_value("HKCU", "Flag", 1))


class TestDeleteRegistryKey:
    def test_absent_key_is_satisfied(self, executors):
        ex = executors[ActionKind.delete_registry_key]
        assert ex.is_satisfied(delete_registry_key("HKCU\\Software\\Nope"))

    def test_delete_removes_subtree(self, executors, registry):
        registry.add_key(parse_registry_path("HKCU\\Software\\Taskband\\Child\\Grandchild"))
        ex = executors[ActionKind.delete_registry_key]
        action = delete_registry_key("HKCU\\Software\\Taskband")
        assert not ex.is_satisfied(action)
        ex.apply(action)
        assert ex.is_satisfied(action)
        assert not registry.key_exists(parse_registry_path("HKCU\\Software\\Taskband\\Child"))
        assert registry.key_exists(parse_registry_path("HKCU\\Software"))

    def test_apply_on_absent_key_does_not_raise(self, executors):
        ex = executors[ActionKind.delete_registry_key]
        ex.apply(delete_registry_key("HKCU\\Software\\Nope"))

    def test_refuses_hive_root(self, executors):
        ex = executors[ActionKind.delete_registry_key]
        with pytest.raises(InvalidTargetError):
            ex.apply(delete_registry_key("HKLM"))


class TestStopProcess:
    def test_not_running_is_satisfied(self, executors):
        assert executors[ActionKind.stop_process].is_satisfied(stop_process("notepad"))

    def test_bare_name_matches_exe(self, executors, processes):
        processes.start("Notepad.exe")
        ex = executors[ActionKind.stop_process]
        action = stop_process("notepad")
        assert not ex.is_satisfied(action)
        result = ex.apply(action)
        assert [i.outcome for i in result.items] == [Outcome.applied]
        assert ex.is_satisfied(action)

    def test_glob_kills_all_matches(self, executors, processes):
        for n in ("msedge.exe", "msedge.exe", "msedgewebview2.exe", "explorer.exe"):
            processes.start(n)
        ex = executors[ActionKind.stop_process]
        ex.apply(stop_process("msedge*"))
        assert [p.name for p in processes.procs] == ["explorer.exe"]

    def test_no_match_apply_is_noop(self, executors, processes):
        result = executors[ActionKind.stop_process].apply(stop_process("notepad"))
        assert result.items == []
        assert processes.killed == []

    def test_access_denied_on_one_still_kills_others(self, executors, processes):
        protected = processes.start("GameBar.exe")
        processes.start("GameBarFTServer.exe")
        processes.protected.add(protected.pid)
        ex = executors[ActionKind.stop_process]
        with pytest.raises(PartialFailure) as exc:
            ex.apply(stop_process("GameBar*"))
        assert exc.value.code == ErrorCode.access_denied
        assert [p.name for p in processes.killed] == ["GameBarFTServer.exe"]


class TestRemovePackage:
    def test_none_installed_is_satisfied(self, executors):
        assert executors[ActionKind.remove_package].is_satisfied(remove_package("*Copilot*"))

    def test_removes_every_match(self, executors, packages):
        packages.install("Microsoft.Copilot")
        packages.install("Microsoft.Windows.Ai.Copilot.Provider")
        packages.install("Microsoft.BingNews")
        ex = executors[ActionKind.remove_package]
        result = ex.apply(remove_package("*Copilot*"))
        assert len(result.items) == 2
        assert [p.name for p in packages.installed] == ["Microsoft.BingNews"]
        assert ex.is_satisfied(remove_package("*Copilot*"))

    def test_partial_failure_keeps_going(self, executors, packages):
        packages.install("Microsoft.Copilot")
        packages.install("Microsoft.Windows.Ai.Copilot.Provider")
        packages.install("Microsoft.CopilotPlus")
        packages.failures["Microsoft.Windows.Ai.Copilot.Provider"] = AccessDeniedError("denied")
        with pytest.raises(PartialFailure) as exc:
            executors[ActionKind.remove_package].apply(remove_package("*Copilot*"))
        outcomes = [(i.name.split("_")[0], i.outcome) for i in exc.value.items]
        assert outcomes == [
            ("Microsoft.Copilot", Outcome.applied),
            ("Microsoft.Windows.Ai.Copilot.Provider", Outcome.failed_recoverable),
            ("Microsoft.CopilotPlus", Outcome.applied),
        ]
        assert exc.value.code == ErrorCode.access_denied


class TestDeletePath:
    def test_missing_path_is_satisfied(self, executors, tmp_path):
        ex = executors[ActionKind.delete_path]
        assert ex.is_satisfied(delete_path(str(tmp_path / "notepad_lock")))

    def test_deletes_file(self, executors, tmp_path):
        f = tmp_path / "lock"
        f.write_text("x")
        ex = executors[ActionKind.delete_path]
        action = delete_path(str(f))
        assert not ex.is_satisfied(action)
        ex.apply(action)
        assert not f.exists()
        assert ex.is_satisfied(action)

    def test_deletes_tree(self, executors, tmp_path):
        d = tmp_path / "Edge" / "Application"
        d.mkdir(parents=True)
        (d / "msedge.exe").write_bytes(b"MZ")
        ex = executors[ActionKind.delete_path]
        ex.apply(delete_path(str(tmp_path / "Edge")))
        assert not (tmp_path / "Edge").exists()

    def test_deletes_dangling_symlink(self, executors, tmp_path):
        link = tmp_path / "link"
        try:
            link.symlink_to(tmp_path / "missing")
        except (OSError, NotImplementedError):
            pytest.skip("symlinks not available")
        ex = executors[ActionKind.delete_path]
        action = delete_path(str(link))
        assert not ex.is_satisfied(action)
        ex.apply(action)
        assert ex.is_satisfied(action)
        assert not link.is_symlink()

    def test_apply_on_missing_path_does_not_raise(self, executors, tmp_path):
        executors[ActionKind.delete_path].apply(delete_path(str(tmp_path / "gone")))


class TestEnsureDirectory:
    def test_creates_parents(self, executors, tmp_path):
        target = tmp_path / "a" / "b" / "c"
        ex = executors[ActionKind.ensure_directory]
        action = ensure_directory(str(target))
        assert not ex.is_satisfied(action)
        ex.apply(action)
        assert target.is_dir()
        assert ex.is_satisfied(action)

    def test_file_in_the_way_is_invalid_target(self, executors, tmp_path):
        f = tmp_path / "file"
        f.write_text("x")
        ex = executors[ActionKind.ensure_directory]
        with pytest.raises(InvalidTargetError):
            ex.is_satisfied(ensure_directory(str(f)))


class TestRunExternalCommand:
    def test_never_satisfied(self, executors):
        assert not executors[ActionKind.run_external_command].is_satisfied(run_external_command("cleanmgr.exe"))

    def test_blocking_run_passes_args_and_timeout(self, executors, commands):
        executors[ActionKind.run_external_command].apply(
            run_external_command("net", "stop", "wuauserv", timeout=30)
        )
        assert commands.calls == [(["net", "stop", "wuauserv"], 30)]

    def test_nonzero_exit_fails(self, executors, commands):
        commands.returncode = 5
        with pytest.raises(ExternalCommandFailed) as exc:
            executors[ActionKind.run_external_command].apply(run_external_command("tool.exe"))
        assert exc.value.exit_code == 5
        assert exc.value.code == ErrorCode.external_command_failed

    def test_custom_ok_exit_codes(self, executors, commands):
        commands.returncode = 2
        result = executors[ActionKind.run_external_command].apply(
            run_external_command("net", "stop", "wuauserv", ok_exit_codes=(0, 2))
        )
        assert result.detail == "rc=2"

    def test_detach_does_not_wait(self, executors, commands):
        result = executors[ActionKind.run_external_command].apply(
            run_external_command("cleanmgr.exe", "/sagerun:1", detach=True)
        )
        assert commands.calls == []
        assert commands.spawned == [["cleanmgr.exe", "/sagerun:1"]]
        assert "4242" in result.detail


class TestUnresolvedVariables:
    """Targets still holding ${VAR} after plan loading never touch the filesystem."""

    def test_ensure_directory_refuses(self, executors, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        ex = executors[ActionKind.ensure_directory]
        action = ensure_directory("${SYSTEMROOT}\\Temp")
        with pytest.raises(InvalidTargetError):
            ex.is_satisfied(action)
        with pytest.raises(InvalidTargetError):
            ex.apply(action)
        assert list(tmp_path.iterdir()) == []

    def test_delete_path_refuses(self, executors):
        with pytest.raises(InvalidTargetError):
            executors[ActionKind.delete_path].is_satisfied(delete_path("${PUBLIC}\\Desktop\\Microsoft Edge.lnk"))

    def test_command_argument_refuses(self, executors, commands):
        with pytest.raises(InvalidTargetError):
            executors[ActionKind.run_external_command].apply(run_external_command("cleanmgr.exe", "/d", "${SYSTEMDRIVE}"))
        assert commands.calls == []

    def test_runner_records_invalid_target(self, executors, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        report = execute(Plan(name="p", actions=[ensure_directory("${SYSTEMROOT}\\Temp")]), executors)
        assert report.entries[0].outcome == Outcome.failed_recoverable
        assert report.entries[0].error_code == ErrorCode.invalid_target
        assert list(tmp_path.iterdir()) == []

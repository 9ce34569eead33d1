"""Tests for the device bridge client."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from android_device_hub.device.bridge import DeviceBridgeClient, run_command
from android_device_hub.device.models import DeviceKind
from android_device_hub.errors import BridgeUnavailableError, HubError, bridge_command_error


class _CompletedProcess:
    def __init__(self, stdout: bytes = b"", stderr: bytes = b"", returncode: int = 0) -> None:
        self._stdout = stdout
        self._stderr = stderr
        self.returncode = returncode
        self.killed = False

    async def communicate(self) -> tuple[bytes, bytes]:
        return self._stdout, self._stderr

    def kill(self) -> None:
        self.killed = True

    async def wait(self) -> int:
        return self.returncode


class _HangingProcess(_CompletedProcess):
    async def communicate(self) -> tuple[bytes, bytes]:
        await asyncio.sleep(60)
        return b"", b""


class TestRunCommand:
    """Tests for run_command."""

    @pytest.mark.asyncio
    async def test_returns_stdout(self) -> None:
        """Should decode stdout of a successful command."""
        process = _CompletedProcess(stdout=b"List of devices attached\n")
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)) as spawn:
            output = await run_command(["adb", "devices"], timeout=1.0)

        assert output == "List of devices attached\n"
        assert spawn.call_args.args == ("adb", "devices")

    @pytest.mark.asyncio
    async def test_missing_binary(self) -> None:
        """Should raise ERR_BRIDGE_NOT_FOUND when the binary is absent."""
        with patch("asyncio.create_subprocess_exec", AsyncMock(side_effect=FileNotFoundError)):
            with pytest.raises(BridgeUnavailableError) as exc_info:
                await run_command(["adb", "devices"], timeout=1.0)

        assert exc_info.value.code == "ERR_BRIDGE_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_non_zero_exit(self) -> None:
        """Should surface stderr of a failing command."""
        process = _CompletedProcess(stderr=b"error: device offline\n", returncode=1)
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            with pytest.raises(BridgeUnavailableError) as exc_info:
                await run_command(["adb", "-s", "emulator-5554", "emu", "avd", "name"], timeout=1.0)

        assert exc_info.value.code == "ERR_BRIDGE_COMMAND"
        assert "device offline" in exc_info.value.context["reason"]

    @pytest.mark.asyncio
    async def test_timeout_kills_child(self) -> None:
        """Should kill a child that does not answer in time."""
        process = _HangingProcess()
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            with pytest.raises(BridgeUnavailableError) as exc_info:
                await run_command(["adb", "devices"], timeout=0.01)

        assert exc_info.value.code == "ERR_BRIDGE_TIMEOUT"
        assert process.killed


class TestDeviceBridgeClient:
    """Tests for DeviceBridgeClient."""

    def test_command_prefix(self) -> None:
        """Should target a device with -s."""
        client = DeviceBridgeClient(adb_path="/sdk/adb")

        assert client.command(["devices"]) == ["/sdk/adb", "devices"]
        assert client.command(["logcat"], "emulator-5554") == [
            "/sdk/adb",
            "-s",
            "emulator-5554",
            "logcat",
        ]

    @pytest.mark.asyncio
    async def test_list_devices(self) -> None:
        """Should parse the devices listing."""
        client = DeviceBridgeClient()
        output = "List of devices attached\nemulator-5554\tdevice\nR58M123ABC\tdevice\n"

        with patch.object(client, "run", AsyncMock(return_value=output)):
            devices = await client.list_devices()

        assert [d.kind for d in devices] == [DeviceKind.EMULATOR, DeviceKind.PHYSICAL]

    @pytest.mark.asyncio
    async def test_resolve_pid_falls_back(self) -> None:
        """Should try the next method when one fails or finds nothing."""
        client = DeviceBridgeClient(pid_lookup_methods=("pidof", "ps", "dumpsys"))
        answers = {
            "pidof": bridge_command_error("adb shell pidof", "not found"),
            "ps": "USER PID PPID VSZ RSS WCHAN ADDR S NAME\n",
            "dumpsys": "  *APP* UID 10123 ProcessRecord{5a3b9e1 1234:com.example.app/u0a123}\n",
        }
        calls: list[str] = []

        async def fake_run(args, device_id=None):
            method = args[1]
            calls.append(method)
            answer = answers[method]
            if isinstance(answer, HubError):
                raise answer
            return answer

        with patch.object(client, "run", side_effect=fake_run):
            pid = await client.resolve_pid("emulator-5554", "com.example.app")

        assert pid == "1234"
        assert calls == ["pidof", "ps", "dumpsys"]

    @pytest.mark.asyncio
    async def test_resolve_pid_stops_at_first_hit(self) -> None:
        """Should not run later methods once a pid is found."""
        client = DeviceBridgeClient()
        run = AsyncMock(return_value="1234\n")

        with patch.object(client, "run", run):
            pid = await client.resolve_pid("emulator-5554", "com.example.app")

        assert pid == "1234"
        run.assert_awaited_once_with(["shell", "pidof", "-s", "com.example.app"], "emulator-5554")

    @pytest.mark.asyncio
    async def test_describe_emulator(self) -> None:
        """Should name emulators after their AVD."""
        from android_device_hub.device.models import Device, DeviceStatus

        client = DeviceBridgeClient()
        answers = {
            ("shell", "getprop", "ro.product.model"): "sdk_gphone64_x86_64\n",
            ("shell", "getprop", "ro.build.version.release"): "14\n",
            ("emu", "avd", "name"): "Pixel_6_API_34\nOK\n",
        }

        async def fake_run(args, device_id=None):
            return answers[tuple(args)]

        device = Device(id="emulator-5554", status=DeviceStatus.ONLINE, kind=DeviceKind.EMULATOR)
        with patch.object(client, "run", side_effect=fake_run):
            described = await client.describe_device(device)

        assert described.avd_name == "Pixel_6_API_34"
        assert described.display_name == "Pixel_6_API_34"
        assert described.os_version == "14"

    @pytest.mark.asyncio
    async def test_clear_log(self) -> None:
        """Should clear the device log ring."""
        client = DeviceBridgeClient()
        run = AsyncMock(return_value="")

        with patch.object(client, "run", run):
            await client.clear_log("emulator-5554")

        run.assert_awaited_once_with(["logcat", "-c"], "emulator-5554")

    @pytest.mark.asyncio
    async def test_clear_log_failure_is_ignored(self) -> None:
        """Should not raise when the device refuses to clear."""
        client = DeviceBridgeClient()
        run = AsyncMock(side_effect=bridge_command_error("adb logcat -c", "failed"))

        with patch.object(client, "run", run):
            await client.clear_log("emulator-5554")

        run.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_spawn_logcat_missing_adb(self) -> None:
        """Should map a missing adb to ERR_BRIDGE_NOT_FOUND."""
        client = DeviceBridgeClient(adb_path="/missing/adb")

        with patch("asyncio.create_subprocess_exec", AsyncMock(side_effect=FileNotFoundError)):
            with pytest.raises(BridgeUnavailableError) as exc_info:
                await client.spawn_logcat("emulator-5554", ["-v", "threadtime"])

        assert exc_info.value.code == "ERR_BRIDGE_NOT_FOUND"

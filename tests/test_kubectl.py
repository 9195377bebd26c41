"""Tests for KubectlClient against a scripted kubectl binary."""

import asyncio
import stat
import sys

import pytest

from svcfwd.exceptions import DiscoveryError, ForwardCancelled, TransientForwardError
from svcfwd.kube.client import STDERR_DETAIL_BYTES, KubectlClient, parse_ports
from svcfwd.models.target import PortRecord

pytestmark = pytest.mark.skipif(
    sys.platform == "win32", reason="fake kubectl is a shell script"
)

SERVICES_OUTPUT = """\
default,api,TCP,http,80
default,api,TCP,<no value>,8443
kube-system,kube-dns,UDP,dns,53
kube-system,kube-dns,TCP,dns-tcp,53
"""


@pytest.fixture
def fake_kubectl(tmp_path):
    """Write an executable kubectl stand-in; returns its path."""

    def _write(body):
        path = tmp_path / "kubectl"
        path.write_text(f"#!/bin/sh\necho \"$@\" >> {tmp_path}/calls\n{body}\n")
        path.chmod(path.stat().st_mode | stat.S_IEXEC)
        return str(path)

    return _write


def calls(tmp_path):
    return (tmp_path / "calls").read_text().splitlines()


class BufferedProcess:
    """A kubectl child whose stderr already holds output."""

    pid = 4242

    def __init__(self, stderr: bytes):
        self.stderr_data = stderr
        self.returncode = None
        self.killed = False

    async def spawn(self, *args, **kwargs):
        self.stdout = asyncio.StreamReader()
        self.stdout.feed_eof()
        self.stderr = asyncio.StreamReader()
        self.stderr.feed_data(self.stderr_data)
        return self

    def kill(self):
        self.killed = True
        self.returncode = -9

    async def wait(self):
        return self.returncode


class TestDiscovery:
    """Test context and port discovery."""

    @pytest.mark.asyncio
    async def test_contexts(self, fake_kubectl):
        kubectl = fake_kubectl(
            'case "$2" in\n'
            "  get-contexts) printf 'ctx-a\\nctx-b\\n\\n' ;;\n"
            "  current-context) echo ctx-b ;;\n"
            "esac"
        )
        available, current = await KubectlClient(kubectl).contexts()
        assert available == {"ctx-a", "ctx-b"}
        assert current == "ctx-b"

    @pytest.mark.asyncio
    async def test_no_current_context(self, fake_kubectl):
        """An unset current context is reported as empty, not an error."""
        kubectl = fake_kubectl(
            'case "$2" in\n'
            "  get-contexts) echo ctx-a ;;\n"
            '  current-context) echo "error: current-context is not set" >&2; exit 1 ;;\n'
            "esac"
        )
        available, current = await KubectlClient(kubectl).contexts()
        assert available == {"ctx-a"}
        assert current == ""

    @pytest.mark.asyncio
    async def test_get_contexts_failure(self, fake_kubectl):
        kubectl = fake_kubectl('echo "error: no kubeconfig" >&2\nexit 1')
        with pytest.raises(DiscoveryError, match="no kubeconfig"):
            await KubectlClient(kubectl).contexts()

    @pytest.mark.asyncio
    async def test_missing_binary(self, tmp_path):
        client = KubectlClient(str(tmp_path / "no-such-kubectl"))
        with pytest.raises(DiscoveryError, match="failed to run"):
            await client.contexts()

    @pytest.mark.asyncio
    async def test_ports(self, fake_kubectl, tmp_path):
        """Service ports of every namespace are parsed from the template output."""
        kubectl = fake_kubectl(f"cat <<'OUT'\n{SERVICES_OUTPUT}OUT")

        records = await KubectlClient(kubectl).ports("ctx-a")

        assert records[0] == PortRecord("default", "api", "tcp", "http", "80")
        assert records[1].name == "unnamed"
        assert records[2].protocol == "udp"
        assert len(records) == 4

        args = calls(tmp_path)[0]
        assert args.startswith("get services --context ctx-a --all-namespaces")
        assert "-o=go-template=" in args

    @pytest.mark.asyncio
    async def test_ports_failure(self, fake_kubectl):
        kubectl = fake_kubectl('echo "Unable to connect to the server" >&2\nexit 1')
        with pytest.raises(DiscoveryError, match="ctx-a"):
            await KubectlClient(kubectl).ports("ctx-a")


class TestForward:
    """Test KubectlClient.forward."""

    @pytest.mark.asyncio
    async def test_stderr_line_is_transient(self, fake_kubectl):
        """Any stderr output ends the forward as a transient failure."""
        kubectl = fake_kubectl(
            'echo "error: lost connection to pod" >&2\nexec sleep 30'
        )
        with pytest.raises(TransientForwardError) as exc_info:
            await asyncio.wait_for(
                KubectlClient(kubectl).forward(
                    "ctx-a", "default", "api", ["80"], "127.1.27.1", asyncio.Event()
                ),
                timeout=10,
            )
        assert exc_info.value.detail == "error: lost connection to pod"

    @pytest.mark.asyncio
    async def test_exit_is_transient(self, fake_kubectl):
        """A child that dies silently is also retried."""
        kubectl = fake_kubectl("exit 0")
        with pytest.raises(TransientForwardError, match="kubectl exited"):
            await asyncio.wait_for(
                KubectlClient(kubectl).forward(
                    "ctx-a", "default", "api", ["80"], "127.1.27.1", asyncio.Event()
                ),
                timeout=10,
            )

    @pytest.mark.asyncio
    async def test_stop_cancels(self, fake_kubectl, tmp_path):
        """Setting the stop event kills the child and raises ForwardCancelled."""
        kubectl = fake_kubectl(
            'echo "Forwarding from 127.1.27.1:80 -> 8080"\nexec sleep 30'
        )
        stop = asyncio.Event()
        ready = asyncio.Event()

        task = asyncio.create_task(
            KubectlClient(kubectl).forward(
                "ctx-a",
                "default",
                "api",
                ["80", "443"],
                "127.1.27.1",
                stop,
                on_ready=ready.set,
            )
        )
        await asyncio.wait_for(ready.wait(), timeout=10)
        stop.set()

        with pytest.raises(ForwardCancelled):
            await asyncio.wait_for(task, timeout=10)

        assert calls(tmp_path) == [
            "port-forward svc/api --context ctx-a --address 127.1.27.1 "
            "--namespace default 80 443"
        ]

    @pytest.mark.asyncio
    async def test_missing_binary(self, tmp_path):
        """Failing to start kubectl is not a transient failure."""
        client = KubectlClient(str(tmp_path / "no-such-kubectl"))
        with pytest.raises(OSError):
            await client.forward(
                "ctx-a", "default", "api", ["80"], "127.1.27.1", asyncio.Event()
            )

    @pytest.mark.asyncio
    async def test_stderr_without_newline_is_transient(self, fake_kubectl):
        """A single stderr byte is enough, no newline needed."""
        kubectl = fake_kubectl("printf 'E' >&2\nexec sleep 30")
        with pytest.raises(TransientForwardError) as exc_info:
            await asyncio.wait_for(
                KubectlClient(kubectl).forward(
                    "ctx-a", "default", "api", ["80"], "127.1.27.1", asyncio.Event()
                ),
                timeout=10,
            )
        assert exc_info.value.detail == "E"

    @pytest.mark.asyncio
    async def test_oversized_stderr_is_transient(self, fake_kubectl):
        """A stderr line longer than the stream limit is still a reconnect."""
        kubectl = fake_kubectl(
            "s=xxxxxxxxxx\n"
            "i=0\n"
            'while [ "$i" -lt 13 ]; do s="$s$s"; i=$((i + 1)); done\n'
            "printf '%s\\n' \"$s\" >&2\n"
            "exec sleep 30"
        )
        with pytest.raises(TransientForwardError) as exc_info:
            await asyncio.wait_for(
                KubectlClient(kubectl).forward(
                    "ctx-a", "default", "api", ["80"], "127.1.27.1", asyncio.Event()
                ),
                timeout=10,
            )
        detail = exc_info.value.detail
        assert detail and set(detail) == {"x"}
        assert len(detail) <= STDERR_DETAIL_BYTES + 1

    @pytest.mark.asyncio
    async def test_stop_wins_over_buffered_stderr(self, monkeypatch):
        """Stop and stderr ready together: cancelled, not retried."""
        process = BufferedProcess(b"error: lost connection to pod\n")
        monkeypatch.setattr(asyncio, "create_subprocess_exec", process.spawn)
        stop = asyncio.Event()
        stop.set()

        with pytest.raises(ForwardCancelled):
            await KubectlClient().forward(
                "ctx-a", "default", "api", ["80"], "127.1.27.1", stop
            )
        assert process.killed

    @pytest.mark.asyncio
    async def test_buffered_stderr_detail(self, monkeypatch):
        """The reconnect detail is the first stderr line."""
        process = BufferedProcess(b"error: lost connection to pod\nsecond line\n")
        monkeypatch.setattr(asyncio, "create_subprocess_exec", process.spawn)

        with pytest.raises(TransientForwardError) as exc_info:
            await KubectlClient().forward(
                "ctx-a", "default", "api", ["80"], "127.1.27.1", asyncio.Event()
            )
        assert exc_info.value.detail == "error: lost connection to pod"
        assert process.killed

    def test_forward_command(self):
        assert KubectlClient.forward_command(
            "kubectl", "prod", "web", "frontend", ["80"], "127.1.27.3"
        ) == [
            "kubectl",
            "port-forward",
            "svc/frontend",
            "--context",
            "prod",
            "--address",
            "127.1.27.3",
            "--namespace",
            "web",
            "80",
        ]


class TestParsePorts:
    """Test parse_ports."""

    def test_empty_output(self):
        assert parse_ports("") == []

    def test_blank_lines_skipped(self):
        records = parse_ports("\ndefault,api,TCP,,80\n\n")
        assert records == [PortRecord("default", "api", "tcp", "unnamed", "80")]

    def test_malformed_record(self):
        with pytest.raises(DiscoveryError, match="unexpected record"):
            parse_ports("default,api,TCP,80\n", "ctx-a")

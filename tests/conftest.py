import shlex
import pytest
from dprov.CONFIG.settings import Settings
from dprov.errors import EngineCommandError, EngineTimeoutError

BASE_PACKAGES = {"bash", "coreutils", "dnf", "rpm"}
REPOSITORY = {"iproute", "nodejs", "git", "curl", "python3"}


class FakeEngine:
    """
    In-memory stand-in for a container engine.

    Images are dicts of {"packages": set, "upgraded": bool}. Failures can be
    queued per step ("pull", "upgrade", "install") and are raised in order.
    """

    def __init__(self, executable="fake", timeout=None, verbose=False):
        self.executable = executable
        self.timeout = timeout
        self.events = []
        self.images = {"fedora:29": {"packages": set(BASE_PACKAGES), "upgraded": False}}
        self.containers = {}
        self.repository = set(REPOSITORY)
        self.failures = {"pull": [], "upgrade": [], "install": []}
        self.removed_images = []
        self.removed_containers = []
        self._next_id = 0

    @staticmethod
    def detect(preferred="auto"):
        return "fake"

    def fail(self, step, stderr, returncode=1):
        self.failures[step].append(EngineCommandError(["fake", step], returncode, "", stderr))

    def time_out(self, step, timeout=5):
        self.failures[step].append(EngineTimeoutError(["fake", step], timeout))

    def _maybe_fail(self, step):
        if self.failures[step]:
            raise self.failures[step].pop(0)

    def pull(self, image):
        self.events.append(("pull", image))
        self._maybe_fail("pull")
        if image not in self.images:
            raise EngineCommandError(["fake", "pull", image], 125, "",
                                     f"Error: initializing source docker://{image}: manifest unknown")

    def run(self, image, script, name, environment=None):
        step = "install" if " install " in f" {script} " else "upgrade"
        self.events.append(("run", step, image, name))
        state = {
            "packages": set(self.images[image]["packages"]),
            "upgraded": self.images[image]["upgraded"],
        }
        self.containers[name] = state
        self._maybe_fail(step)
        if step == "upgrade":
            state["upgraded"] = True
            return name

        tokens = shlex.split(script)
        requested = tokens[tokens.index("install") + 1:]
        missing = [p for p in requested if p not in self.repository]
        if missing:
            stderr = "\n".join(f"No match for argument: {p}" for p in missing)
            raise EngineCommandError(["fake", "run"], 1, "", stderr + "\nError: Unable to find a match: " + " ".join(missing))
        state["packages"].update(requested)
        return name

    def commit(self, container, tag=None, labels=None):
        self._next_id += 1
        image_id = f"sha256:{self._next_id:064x}"
        state = dict(self.containers[container], labels=dict(labels or {}))
        self.images[image_id] = state
        if tag:
            self.images[tag] = state
        self.events.append(("commit", container, image_id, tag))
        return image_id

    def tag(self, image, tag):
        self.events.append(("tag", image, tag))
        self.images[tag] = self.images[image]

    def remove_container(self, name):
        self.removed_containers.append(name)
        self.containers.pop(name, None)

    def remove_image(self, image):
        self.removed_images.append(image)
        self.images.pop(image, None)

    def check(self, image, command):
        return 0 if command[-1] in self.images[image]["packages"] else 1

    def output(self, image, command):
        return "\n".join(sorted(self.images[image]["packages"])) + "\n"


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def settings():
    return Settings(retry_wait=0)


@pytest.fixture
def reveal_recipe(tmp_path):
    path = tmp_path / "Dockerfile.reveal.js"
    path.write_text(
        "FROM fedora:29\n"
        "\n"
        "RUN dnf -y upgrade \\\n"
        "    && \\\n"
        "    dnf -y install \\\n"
        "        iproute \\\n"
        "        nodejs \\\n"
        "        git\n"
    )
    return path


@pytest.fixture
def cli_engine(monkeypatch):
    """Makes the CLI build against a single FakeEngine."""
    engine = FakeEngine()

    class EngineFactory:
        detect = staticmethod(FakeEngine.detect)

        def __new__(cls, *args, **kwargs):
            return engine

    monkeypatch.setattr("dprov.CLI.main.ContainerEngine", EngineFactory)
    return engine

import sys
from pathlib import Path

import httpx
import pytest

ROOT = Path(__file__).resolve().parent.parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from modelscout.cache import TTLCache  # noqa: E402
from modelscout.config import ScoutConfig, set_config  # noqa: E402

HUB_URL = "https://hub.test"
OLLAMA_URL = "http://ollama.test:11434"

_ENV_KEYS = (
    "HF_TOKEN",
    "OLLAMA_MODELS",
    "OLLAMA_HOST",
    "COMFYUI_PATH",
    "MODELSCOUT_CACHE_TTL_MINUTES",
    "MODELSCOUT_HUB_URL",
    "MODELSCOUT_REQUEST_TIMEOUT_S",
)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point every test at a throwaway config, log dir and model stores.

    The global configuration is reset afterwards so tests never see each
    other's ``set_config`` calls.
    """

    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("MODELSCOUT_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("MODELSCOUT_CONFIG_FILE", str(tmp_path / "config.toml"))

    models_dir = tmp_path / "ollama-models"
    models_dir.mkdir()
    comfy_dir = tmp_path / "ComfyUI"
    (comfy_dir / "models").mkdir(parents=True)

    config = ScoutConfig(
        models_path=str(models_dir),
        comfyui_path=str(comfy_dir),
        hub_base_url=HUB_URL,
        ollama_host=OLLAMA_URL,
    )
    set_config(config)
    yield config
    set_config(None)


@pytest.fixture
def comfyui_root(isolated_config):
    return Path(isolated_config.comfyui_path)


@pytest.fixture
def fake_clock():
    """Mutable clock for TTL tests: ``clock.now`` is the current instant."""

    class _Clock:
        now = 1_000.0

        def __call__(self):
            return self.now

    return _Clock()


@pytest.fixture
def fresh_cache(fake_clock):
    return TTLCache(clock=fake_clock)


@pytest.fixture
def mock_http():
    """Build an ``httpx.AsyncClient`` backed by a handler; records every request."""

    def _factory(handler):
        requests = []

        def _record(request: httpx.Request):
            requests.append(request)
            return handler(request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(_record))
        return client, requests

    return _factory


@pytest.fixture
def sample_gguf_records():
    """Registry search payload for the GGUF catalog."""
    return [
        {
            "id": "TheBloke/CodeHelper-7B-GGUF",
            "author": "TheBloke",
            "lastModified": "2024-05-01T00:00:00.000Z",
            "tags": ["gguf", "7B", "code", "text-generation", "conversational"],
            "pipeline_tag": "text-generation",
            "downloads": 1000,
            "likes": 10,
            "siblings": [
                {"rfilename": "codehelper.Q4_K_M.gguf", "size": 4_000_000_000},
                {"rfilename": "codehelper.Q8_0.gguf"},
                {"rfilename": "codehelper-q4_k_m.gguf"},
                {"rfilename": "README.md"},
            ],
            "private": False,
            "gated": False,
        },
        {
            "id": "someone/tiny-GGUF",
            "lastModified": "2023-01-01T00:00:00.000Z",
            "tags": ["gguf"],
            "downloads": 0,
            "likes": 0,
            "siblings": [{"rfilename": "tiny.Q2_K.gguf"}],
            "gated": "auto",
        },
        {"author": "no-id", "tags": ["gguf"]},
    ]


@pytest.fixture
def sample_diffusion_records():
    """Registry search payload for the image-generation catalog."""
    return [
        {
            "id": "stabilityai/sdxl-vae",
            "tags": ["vae", "diffusers"],
            "downloads": 500,
            "likes": 20,
            "siblings": [
                {"rfilename": "sdxl_vae.safetensors", "size": 334_000_000},
                {"rfilename": "config.json"},
            ],
        },
        {
            "id": "someone/readme-only",
            "tags": ["lora"],
            "siblings": [{"rfilename": "README.md"}],
        },
    ]

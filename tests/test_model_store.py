import pytest

from modelscout import model_store
from modelscout.model_store import (
    delete_installed,
    get_model_dir,
    list_installed,
    resolve_comfyui_path,
)


def test_configured_path_wins(isolated_config, comfyui_root):
    assert resolve_comfyui_path(isolated_config) == comfyui_root


def test_falls_back_to_well_known_roots(isolated_config, tmp_path, monkeypatch):
    isolated_config.comfyui_path = None
    discovered = tmp_path / "home" / "ComfyUI"
    (discovered / "models").mkdir(parents=True)
    monkeypatch.setattr(
        model_store, "candidate_roots", lambda: [tmp_path / "nowhere", discovered]
    )

    assert resolve_comfyui_path(isolated_config) == discovered

    monkeypatch.setattr(model_store, "candidate_roots", lambda: [])
    assert resolve_comfyui_path(isolated_config) is None
    assert list_installed(isolated_config) == []


def test_get_model_dir(comfyui_root):
    path = get_model_dir(comfyui_root, "upscaler")
    assert path == comfyui_root / "models" / "upscale_models"
    assert path.is_dir()

    with pytest.raises(ValueError):
        get_model_dir(comfyui_root, "embedding")


def test_list_installed_only_weight_files(comfyui_root):
    checkpoints = get_model_dir(comfyui_root, "checkpoint")
    (checkpoints / "sdxl.safetensors").write_bytes(b"a" * 2048)
    (checkpoints / "notes.txt").write_text("ignore me")
    loras = get_model_dir(comfyui_root, "lora")
    (loras / "style.pt").write_bytes(b"b")

    installed = list_installed()

    assert [(m.filename, m.model_type) for m in installed] == [
        ("sdxl.safetensors", "checkpoint"),
        ("style.pt", "lora"),
    ]
    assert installed[0].size_human == "2.0 KB"


def test_delete_installed(comfyui_root):
    target = get_model_dir(comfyui_root, "vae") / "old.safetensors"
    target.write_bytes(b"x")

    result = delete_installed(target)

    assert result.success
    assert result.message == "Deleted: old.safetensors"
    assert not target.exists()

    again = delete_installed(target)
    assert not again.success
    assert again.message.startswith("File not found:")

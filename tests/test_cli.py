"""
Lumina Tests - Command Line Interface
"""

import zipfile

import pytest
from click.testing import CliRunner
from PIL import Image

from conftest import image_bytes
from lumina.cli import cli
from lumina.config import Settings
from lumina.models import DetectionRegion


@pytest.fixture
def isolated_settings(tmp_path, monkeypatch):
    """Keep presets and storage inside tmp_path."""
    config = Settings(storage_path=tmp_path / "storage")
    monkeypatch.setattr("lumina.session.default_settings", config)
    monkeypatch.setattr("lumina.presets.settings", config)
    return config


def write_photo(directory, name, size=(60, 40), color=(120, 90, 60)):
    path = directory / name
    path.write_bytes(image_bytes(size=size, color=color, fmt="JPEG"))
    return path


class TestExportCommand:
    def test_single_photo(self, tmp_path, isolated_settings):
        photo = write_photo(tmp_path, "cat.jpg")
        out_dir = tmp_path / "out"

        result = CliRunner().invoke(
            cli, ["export", str(photo), "-o", str(out_dir), "--filter", "bw", "--watermark", "(c)"]
        )

        assert result.exit_code == 0, result.output
        exported = out_dir / "edited_cat.jpg"
        assert exported.exists()
        assert Image.open(exported).size == (60, 40)

    def test_several_photos_zipped(self, tmp_path, isolated_settings):
        photos = [write_photo(tmp_path, "a.jpg"), write_photo(tmp_path, "b.jpg")]
        out_dir = tmp_path / "out"

        result = CliRunner().invoke(cli, ["export", *map(str, photos), "-o", str(out_dir), "--sepia", "50"])

        assert result.exit_code == 0, result.output
        assert "Processing 2/2: b.jpg" in result.output
        with zipfile.ZipFile(out_dir / "lumina_edited_photos.zip") as archive:
            assert sorted(archive.namelist()) == ["edited_a.jpg", "edited_b.jpg"]

    def test_unknown_preset(self, tmp_path, isolated_settings):
        photo = write_photo(tmp_path, "cat.jpg")

        result = CliRunner().invoke(cli, ["export", str(photo), "--preset", "missing"])

        assert result.exit_code != 0
        assert "Unknown preset" in result.output


class StubVisionClient:
    """Stands in for GeminiVisionClient; finds one face everywhere."""

    def __init__(self, **kwargs):
        self.calls = []

    async def detect_privacy_regions(self, image_bytes, mime_type="image/jpeg"):
        self.calls.append(mime_type)
        return [DetectionRegion(ymin=100, xmin=200, ymax=300, xmax=400)]

    async def aclose(self):
        pass


class TestDetectCommand:
    def test_single_photo_is_scanned(self, tmp_path, isolated_settings, monkeypatch):
        monkeypatch.setattr("lumina.session.GeminiVisionClient", StubVisionClient)
        monkeypatch.setattr(isolated_settings, "detection_spacing_seconds", 0.0)
        photo = write_photo(tmp_path, "solo.jpg")

        result = CliRunner().invoke(cli, ["detect", str(photo)])

        assert result.exit_code == 0, result.output
        assert '"xmin": 200' in result.output
        assert '"solo.jpg": null' not in result.output


class TestPresetCommands:
    def test_list_shows_samples(self, isolated_settings):
        result = CliRunner().invoke(cli, ["presets", "list"])

        assert result.exit_code == 0
        assert "Soft Glow" in result.output
        assert "Deep Dark" in result.output

    def test_save_then_show(self, isolated_settings):
        runner = CliRunner()

        saved = runner.invoke(cli, ["presets", "save", "Faded", "--sepia", "35", "--contrast", "85"])
        shown = runner.invoke(cli, ["presets", "show", "faded"])

        assert saved.exit_code == 0, saved.output
        assert isolated_settings.presets_file.exists()
        assert '"sepia": 35.0' in shown.output
        assert '"contrast": 85.0' in shown.output

    def test_delete_unknown(self, isolated_settings):
        result = CliRunner().invoke(cli, ["presets", "delete", "nope"])

        assert result.exit_code != 0
        assert "Unknown preset" in result.output

"""Shared fixtures: the app wired to scratch dirs under tmp_path and a fake ffmpeg."""
import base64
import os
import stat

import pytest

import server

# stand-in for ffmpeg; $3 is the input path and $8 the output path
COPY_SCRIPT = '#!/bin/sh\ncp "$3" "$8"\n'
FAIL_SCRIPT = '#!/bin/sh\necho "Invalid data found when processing input" >&2\nexit 1\n'
SLEEP_SCRIPT = "#!/bin/sh\nexec sleep 5\n"


def b64(data):
    return base64.b64encode(data).decode("ascii")


def staged_files(app):
    found = []
    for folder in (app.config["UPLOAD_FOLDER"], app.config["OUTPUT_FOLDER"]):
        if os.path.isdir(folder):
            found.extend(os.listdir(folder))
    return found


@pytest.fixture
def write_script(tmp_path):
    def _write(name, body):
        path = tmp_path / "bin" / name
        path.parent.mkdir(exist_ok=True)
        path.write_text(body)
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(path)
    return _write


@pytest.fixture
def make_app(tmp_path):
    """Point the module-level app at tmp_path scratch dirs and a given ffmpeg, restoring it afterwards."""
    saved_config = dict(server.app.config)
    saved_transcoder = server.app.extensions.get("transcoder")

    def _make(ffmpeg_bin, **overrides):
        config = {
            "TESTING": True,
            "UPLOAD_FOLDER": str(tmp_path / "uploads"),
            "OUTPUT_FOLDER": str(tmp_path / "outputs"),
            "FFMPEG_BIN": ffmpeg_bin,
        }
        config.update(overrides)
        return server.configure(config)

    yield _make
    server.app.config.clear()
    server.app.config.update(saved_config)
    server.app.extensions["transcoder"] = saved_transcoder


@pytest.fixture
def app(make_app, write_script):
    return make_app(write_script("ffmpeg", COPY_SCRIPT))


@pytest.fixture
def client(app):
    return app.test_client()

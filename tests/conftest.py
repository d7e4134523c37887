import json
import os
import sys

import pytest

from sketchreel.config import Config


@pytest.fixture
def raw_script():
    return {
        "id": "intro",
        "title": "Intro",
        "scenes": [
            {
                "id": "welcome",
                "title": "Welcome",
                "durationSeconds": 5,
                "voiceover": "Hello and welcome to this short course on drawing boxes and arrows",
                "elements": [
                    {"type": "text", "content": "Start here", "x": 200, "y": 200},
                    {"type": "rectangle", "x": 400, "y": 300},
                    {"type": "arrow", "x1": 600, "y1": 350, "x2": 800, "y2": 350},
                ],
            },
            {
                "title": "Quiet",
                "duration": 2.5,
                "elements": [{"type": "circle", "x": 100, "y": 100, "color": "#ff0000"}],
            },
        ],
    }


@pytest.fixture
def script_file(tmp_path, raw_script):
    path = tmp_path / "intro.json"
    path.write_text(json.dumps(raw_script))
    return path


@pytest.fixture
def config(tmp_path):
    return Config(output_dir=tmp_path / "out", stage_timeout=30)


# Stand-ins for the external tools, so tests need neither Node nor ffmpeg.

FAKE_REMOTION = """
import json, sys
args = sys.argv[1:]
assert args[0] == "render", args
entry, comp_id, out = args[1:4]
flags = dict(a[2:].split("=", 1) for a in args[4:] if a.startswith("--"))
props = json.load(open(flags["props"]))
if comp_id == "broken":
    sys.stderr.write("composition crashed")
    sys.exit(1)
meta = {k: props[k] for k in ("component", "durationInFrames", "fps", "width", "height")}
if flags.get("frames") != "0-%d" % (meta["durationInFrames"] - 1):
    sys.stderr.write("frame range does not match durationInFrames")
    sys.exit(2)
if (int(flags["width"]), int(flags["height"])) != (meta["width"], meta["height"]):
    sys.stderr.write("size does not match props")
    sys.exit(2)
received = {"id": comp_id, "title": props["title"], **meta}
open(out, "w").write("render:" + json.dumps(received, sort_keys=True))
"""

FAKE_FFMPEG = """#!{python}
import sys
open(sys.argv[-1], "wb").write(b"ffmpeg:" + " ".join(sys.argv[1:]).encode())
"""


@pytest.fixture
def fake_tools(tmp_path, config):
    """*config* pointed at a fake renderer project and a fake ffmpeg."""
    tools = tmp_path / "tools"
    tools.mkdir()
    remotion = tools / "fake_remotion.py"
    remotion.write_text(FAKE_REMOTION)

    ffmpeg = tools / "ffmpeg"
    ffmpeg.write_text(FAKE_FFMPEG.format(python=sys.executable))
    os.chmod(ffmpeg, 0o755)

    project = tools / "project"
    project.mkdir()

    config.render_command = [sys.executable, str(remotion)]
    config.project_dir = project
    config.ffmpeg = str(ffmpeg)
    return config

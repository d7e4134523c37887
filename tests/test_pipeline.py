import json

import pytest

from sketchreel import narration
from sketchreel.pipeline import Pipeline, UnitOptions, work_dir_for


class FakeResponse:
    ok = True
    status_code = 200
    reason = "OK"
    content = b"ID3audio"


@pytest.fixture
def narrated(fake_tools, monkeypatch):
    fake_tools.elevenlabs_api_key = "k"
    posted = []
    monkeypatch.setattr(narration.requests, "post", lambda url, **kw: posted.append(kw["json"]["text"]) or FakeResponse())
    fake_tools.posted = posted
    return fake_tools


def test_full_unit(tmp_path, script_file, narrated):
    messages = []
    out = tmp_path / "out" / "intro.mp4"
    pipeline = Pipeline(narrated, UnitOptions(), progress_cb=messages.append)
    result = pipeline.run(script_file, out)

    assert result.succeeded, result.error
    assert result.unit_id == "intro"
    assert out.exists() and result.size_bytes == out.stat().st_size
    assert b"-f concat" in out.read_bytes()
    assert out.with_suffix(".srt").read_text().startswith("1\n00:00:00,000")

    stages = [r.stage for r in pipeline.stage_results]
    assert stages == ["render", "render", "narration", "mux", "mux", "concat"]
    assert narrated.posted == ["Hello and welcome to this short course on drawing boxes and arrows"]
    assert not work_dir_for(out, "intro").exists()
    assert any("✅" in m for m in messages)


def test_silent_scene_gets_silent_track(tmp_path, script_file, narrated):
    options = UnitOptions(keep_work=True)
    out = tmp_path / "out" / "intro.mp4"
    Pipeline(narrated, options).run(script_file, out)

    work = work_dir_for(out, "intro")
    assert b"anullsrc" in (work / "scene_002.av.mp4").read_bytes()
    assert b"volume=1,apad" in (work / "scene_001.av.mp4").read_bytes()


def test_no_narration_option(tmp_path, script_file, fake_tools):
    out = tmp_path / "out" / "intro.mp4"
    pipeline = Pipeline(fake_tools, UnitOptions(narrate=False, subtitles=False))
    result = pipeline.run(script_file, out)
    assert result.succeeded, result.error
    assert "narration" not in [r.stage for r in pipeline.stage_results]
    assert not out.with_suffix(".srt").exists()


def test_transition_uses_scene_durations(tmp_path, script_file, fake_tools):
    out = tmp_path / "out" / "intro.mp4"
    result = Pipeline(fake_tools, UnitOptions(narrate=False, transition=1.0)).run(script_file, out)
    assert result.succeeded, result.error
    assert b"xfade=transition=fade:duration=1.000:offset=4.000" in out.read_bytes()


def test_invalid_script_fails_before_any_stage(tmp_path, fake_tools):
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"scenes": []}))
    pipeline = Pipeline(fake_tools)
    result = pipeline.run(bad, tmp_path / "out" / "bad.mp4")
    assert not result.succeeded
    assert result.error.startswith("validate:")
    assert pipeline.stage_results == []


def test_sub_frame_scene_fails_before_any_stage(tmp_path, fake_tools):
    short = tmp_path / "short.json"
    short.write_text(json.dumps({"scenes": [{"id": "s1", "durationSeconds": 0.02}]}))
    out = tmp_path / "out" / "short.mp4"
    pipeline = Pipeline(fake_tools)
    result = pipeline.run(short, out)
    assert not result.succeeded
    assert result.error.startswith("validate:")
    assert "'s1' is 0 frames" in result.error
    assert pipeline.stage_results == []
    assert not out.with_suffix(".srt").exists()


def test_first_failing_stage_ends_the_unit(tmp_path, fake_tools):
    script = tmp_path / "broken.json"
    script.write_text(json.dumps({"scenes": [{"id": "broken"}, {"id": "fine"}]}))
    pipeline = Pipeline(fake_tools, UnitOptions(narrate=False))
    result = pipeline.run(script, tmp_path / "out" / "broken.mp4")

    assert not result.succeeded
    assert "render scene broken" in result.error
    assert "composition crashed" in result.error
    assert len(pipeline.stage_results) == 1
    assert not (tmp_path / "out" / "broken.mp4").exists()


def test_missing_credentials_fail_the_unit(tmp_path, script_file, fake_tools):
    result = Pipeline(fake_tools, UnitOptions(engine="elevenlabs")).run(script_file, tmp_path / "o" / "intro.mp4")
    assert not result.succeeded
    assert "narrate scene welcome" in result.error
    assert "ELEVENLABS_API_KEY" in result.error


def test_cancelled_pipeline(tmp_path, script_file, fake_tools):
    pipeline = Pipeline(fake_tools, UnitOptions(narrate=False))
    pipeline.cancel()
    result = pipeline.run(script_file, tmp_path / "o" / "intro.mp4")
    assert pipeline.cancelled
    assert not result.succeeded
    assert "cancelled" in result.error

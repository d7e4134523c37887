import sys

from sketchreel.errors import MissingCredentials, UpstreamError
from sketchreel.stages import CallStage, CommandStage, StageResult, run_stage


def _py(code):
    """Command stage running *code* with the output path as sys.argv[1]."""
    return CommandStage(name="fake", argv=lambda out: [sys.executable, "-c", code, str(out)])


WRITE_OUTPUT = "import sys; open(sys.argv[1], 'wb').write(b'frames')"


def _leftovers(directory):
    return sorted(p.name for p in directory.iterdir() if p.name.startswith("."))


def test_successful_command_stage(tmp_path):
    out = tmp_path / "clips" / "a.mp4"
    result = run_stage(_py(WRITE_OUTPUT), "unit1", out)

    assert result.succeeded
    assert result.error is None
    assert result.size_bytes == 6
    assert out.read_bytes() == b"frames"
    assert _leftovers(out.parent) == []


def test_nonzero_exit_reports_stderr(tmp_path):
    out = tmp_path / "a.mp4"
    code = "import sys; sys.stderr.write('codec exploded'); sys.exit(3)"
    result = run_stage(_py(code), "unit1", out)

    assert not result.succeeded
    assert "exited with code 3" in result.error
    assert "codec exploded" in result.error
    assert not out.exists()


def test_partial_output_never_reaches_final_path(tmp_path):
    out = tmp_path / "a.mp4"
    code = "import sys; open(sys.argv[1], 'wb').write(b'half'); sys.exit(1)"
    result = run_stage(_py(code), "unit1", out)

    assert not result.succeeded
    assert not out.exists()
    assert _leftovers(tmp_path) == []


def test_success_without_output_is_failure(tmp_path):
    result = run_stage(_py("pass"), "unit1", tmp_path / "a.mp4")
    assert not result.succeeded
    assert "wrote no output" in result.error


def test_empty_output_is_failure(tmp_path):
    out = tmp_path / "a.mp4"
    result = run_stage(_py("import sys; open(sys.argv[1], 'wb').close()"), "unit1", out)
    assert not result.succeeded
    assert "empty" in result.error
    assert not out.exists()


def test_timeout_becomes_failure(tmp_path):
    result = run_stage(_py("import time; time.sleep(30)"), "unit1", tmp_path / "a.mp4", timeout=0.5)
    assert not result.succeeded
    assert "timed out after 0.5s" in result.error


def test_missing_executable(tmp_path):
    stage = CommandStage(name="render", argv=lambda out: ["definitely-not-a-real-tool-xyz", str(out)])
    result = run_stage(stage, "unit1", tmp_path / "a.mp4")
    assert not result.succeeded
    assert "executable not found" in result.error
    assert result.error.startswith("render:")


def test_missing_input(tmp_path):
    stage = CommandStage(name="mux", argv=lambda out: [sys.executable, "-c", "pass"], inputs=[tmp_path / "nope.mp4"])
    result = run_stage(stage, "unit1", tmp_path / "a.mp4")
    assert not result.succeeded
    assert "input not found" in result.error


def test_support_files_exist_only_during_the_run(tmp_path):
    helper = tmp_path / "list.txt"
    code = "import sys; data = open(sys.argv[2]).read(); open(sys.argv[1], 'w').write(data)"
    stage = CommandStage(
        name="concat",
        argv=lambda out: [sys.executable, "-c", code, str(out), str(helper)],
        support_files=lambda out: {helper: "file 'a.mp4'\n"},
    )
    out = tmp_path / "joined.mp4"
    assert run_stage(stage, "unit1", out).succeeded
    assert out.read_text() == "file 'a.mp4'\n"
    assert not helper.exists()


def test_call_stage_success_and_typed_failures(tmp_path):
    ok = CallStage(name="narration", call=lambda out, timeout: out.write_bytes(b"ID3"))
    assert run_stage(ok, "u", tmp_path / "a.mp3").succeeded

    def no_key(out, timeout):
        raise MissingCredentials("ElevenLabs needs an API key")

    result = run_stage(CallStage(name="narration", call=no_key), "u", tmp_path / "b.mp3")
    assert not result.succeeded
    assert "API key" in result.error

    def rejected(out, timeout):
        raise UpstreamError(401, "ElevenLabs API error: 401 Unauthorized")

    result = run_stage(CallStage(name="narration", call=rejected), "u", tmp_path / "c.mp3")
    assert "401" in result.error


def test_unexpected_exception_is_contained(tmp_path):
    def boom(out, timeout):
        out.write_bytes(b"partial")
        raise RuntimeError("disk on fire")

    out = tmp_path / "a.mp3"
    result = run_stage(CallStage(name="narration", call=boom), "u", out)
    assert not result.succeeded
    assert "RuntimeError: disk on fire" in result.error
    assert not out.exists()
    assert _leftovers(tmp_path) == []


def test_temp_path_is_unique_per_unit(tmp_path):
    seen = []

    def record(out, timeout):
        seen.append(out)
        out.write_bytes(b"x")

    stage = CallStage(name="render", call=record)
    run_stage(stage, "unit-a", tmp_path / "a.mp4")
    run_stage(stage, "unit-b", tmp_path / "a.mp4")
    assert seen[0] != seen[1]
    assert all(p.suffix == ".mp4" for p in seen)


def test_result_serializes_camel_case(tmp_path):
    result = StageResult(unit_id="u", succeeded=True, output_path="o.mp4", size_bytes=10)
    data = result.to_dict()
    assert data["unitId"] == "u"
    assert data["sizeBytes"] == 10
    assert data["outputPath"] == "o.mp4"
    assert "error" not in data

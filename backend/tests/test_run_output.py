"""
Tests for the key=value run summary sink.
"""

from botfarm.services.run_output import RunOutput


def test_appends_key_value_lines(tmp_path):
    path = tmp_path / "github_output"
    path.write_text("earlier=1\n")

    RunOutput(str(path)).write({'processed': 3, 'ok': True, 'details': {'a': 1}})

    assert path.read_text().splitlines() == [
        'earlier=1',
        'processed=3',
        'ok=true',
        'details={"a": 1}',
    ]


def test_error_summary(tmp_path):
    path = tmp_path / "out"
    RunOutput(str(path)).write_error("POSTGRES_HOST environment variable is required")

    assert path.read_text().splitlines() == [
        'error=POSTGRES_HOST environment variable is required',
        'processed=0',
    ]


def test_newlines_flattened(tmp_path):
    path = tmp_path / "out"
    RunOutput(str(path)).write({'error': 'line one\nline two'})
    assert path.read_text() == 'error=line one line two\n'


def test_no_path_only_logs(caplog):
    with caplog.at_level('INFO'):
        RunOutput(None).write({'processed': 1})
    assert '"processed": 1' in caplog.text

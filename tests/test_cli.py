from typer.testing import CliRunner

from bayalign import __version__
from bayalign.cli import app

runner = CliRunner()

NEWICK = "((A:0.1,B:0.2):0.05,(C:0.3,D:0.4):0.05);"


def test_version():
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_states_summary():
    result = runner.invoke(app, ["states"])
    assert result.exit_code == 0
    assert "412" in result.stdout
    assert "35" in result.stdout


def test_states_listing():
    result = runner.invoke(app, ["states", "--n-way", "2"])
    assert result.exit_code == 0
    assert "G2" in result.stdout

    result = runner.invoke(app, ["states", "--n-way", "4"])
    assert result.exit_code == 1


def test_encode():
    result = runner.invoke(app, ["encode", "AC-", "ACG"])
    assert result.exit_code == 0
    assert result.stdout.strip() == "M,M,G2"

    result = runner.invoke(app, ["encode", "AC", "A"])
    assert result.exit_code == 1


def test_decode():
    result = runner.invoke(app, ["decode", "AC", "ACG", "--path", "M,M,G2"])
    assert result.exit_code == 0
    assert result.stdout.split() == ["AC-", "ACG"]


def test_decode_rejects_bad_paths():
    assert runner.invoke(app, ["decode", "AC", "ACG", "--path", "M,X"]).exit_code == 1
    assert runner.invoke(app, ["decode", "AC", "ACG", "--path", "M,M,M"]).exit_code == 1


def test_sample_named_rows():
    result = runner.invoke(
        app,
        [
            "sample",
            NEWICK,
            "A=ACGT-",
            "B=AC-TT",
            "C=A-GT-",
            "D=ACG--",
            "--iterations",
            "2",
            "--seed",
            "1",
        ],
    )
    assert result.exit_code == 0, result.stdout
    assert "Branch lengths" in result.stdout
    assert "branch-length" in result.stdout


def test_sample_missing_row():
    result = runner.invoke(app, ["sample", NEWICK, "A=AC", "B=AC", "C=AC", "--iterations", "1"])
    assert result.exit_code == 1
    assert "No row" in result.stdout

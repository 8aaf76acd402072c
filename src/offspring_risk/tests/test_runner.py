import json

import pytest

from offspring_risk.runner import main, parse_int_list

SAMPLE = ",".join(["0"] * 30 + ["1"] * 5 + ["2"] * 3 + ["10"])


def test_parse_int_list():
    assert parse_int_list("1, 2;3 4") == [1, 2, 3, 4]
    assert parse_int_list("") == []


def test_risk_command(capsys):
    main(["risk", "--R", "1.2", "--k", "0.5", "--cluster-size", "2,5,10"])
    out = capsys.readouterr().out
    assert "P(cluster >= 2)" in out
    assert "P(cluster >= 10)" in out
    assert "Extinction probability" in out


def test_run_command_json(capsys):
    main(["run", "--sample", SAMPLE, "--families", "pois,nbinom", "--json"])
    summary = json.loads(capsys.readouterr().out)
    assert summary["best_model"] == "nbinom"
    assert summary["k"] < 1.0
    assert set(summary["cluster_size"]) == {"2", "5", "10"}


def test_simulate_then_fit(tmp_path, capsys):
    out = tmp_path / "contacts.csv"
    main(["simulate", "--seed", "3", "--out", str(out), "--contact-mu", "3",
          "--contact-size", "1", "--outbreak-size", "20,60"])
    assert out.exists()
    main(["fit", "--contacts", str(out), "--families", "pois,geom"])
    assert "best = " in capsys.readouterr().out


def test_bad_input_exits(capsys):
    with pytest.raises(SystemExit) as info:
        main(["risk", "--R", "1.2", "--k", "0.5", "--ind-control", "1.5"])
    assert info.value.code == 2
    assert "ind_control" in capsys.readouterr().err


def reject_constant(name):
    raise ValueError(f"non-standard JSON constant {name}")


def test_run_command_json_is_strict_for_poisson(capsys):
    main(["run", "--sample", "0,1,2,1,3,2,1,0,2,1", "--families", "pois", "--json"])
    summary = json.loads(capsys.readouterr().out, parse_constant=reject_constant)
    assert summary["best_model"] == "pois"
    assert summary["k"] == "inf"


@pytest.mark.parametrize("argv", [
    ["fit", "--sample", "0,a"],
    ["risk", "--R", "1.2", "--k", "0.5", "--cluster-size", "2,x"],
    ["simulate", "--outbreak-size", "10,many"],
])
def test_malformed_lists_are_usage_errors(capsys, argv):
    with pytest.raises(SystemExit) as info:
        main(argv)
    assert info.value.code == 2
    assert "expected comma separated integers" in capsys.readouterr().err

import json

import pytest
from pydantic import ValidationError

from region_balancer.interface import BalancerConfig
from region_balancer.interface import ENSEMBLE_TABLE_NAME
from region_balancer.tools.balance_cluster import ClusterDescription
from region_balancer.tools.balance_cluster import load_cluster
from region_balancer.tools.balance_cluster import main
from region_balancer.tools.balance_cluster import run
from tests.tools import mock_data


@pytest.fixture
def cluster_file(tmp_path):
    path = tmp_path / "cluster.json"
    path.write_text(json.dumps(mock_data.skewed_cluster), encoding="utf-8")
    return path


def test_load_cluster(cluster_file):
    description = load_cluster(cluster_file)
    assert len(description.servers) == 4
    assert len(description.servers["host1,16020,1"]) == 6
    assert description.racks["host3"] == "rack2"
    assert description.hints[0].locality == {"host3": 0.9, "host1": 0.1}
    assert description.hints[1].load.write_requests_per_second == 50
    assert description.hints[1].locality == {}


def test_invalid_description():
    with pytest.raises(ValidationError):
        ClusterDescription.model_validate({"servers": {"host1": [{"table": 3}]}})


def test_run_whole_cluster():
    description = ClusterDescription.model_validate(mock_data.skewed_cluster)
    output = run(description, BalancerConfig(max_steps=5000), by_table=False)

    assert list(output) == [ENSEMBLE_TABLE_NAME]
    result = output[ENSEMBLE_TABLE_NAME]
    assert not result["balanced"]
    assert result["final_cost"] < result["initial_cost"]
    assert result["plans"]
    assert all(p["source"] != p["destination"] for p in result["plans"])


def test_main_prints_plans(cluster_file, capsys):
    assert main([str(cluster_file), "--max-steps", "2000", "--seed", "7"]) == 0
    output = json.loads(capsys.readouterr().out)
    result = output[ENSEMBLE_TABLE_NAME]
    assert result["steps"] <= 2000
    for plan in result["plans"]:
        assert set(plan) == {"region", "source", "destination"}


def test_main_by_table(cluster_file, capsys):
    assert main([str(cluster_file), "--by-table", "--max-steps", "1000"]) == 0
    output = json.loads(capsys.readouterr().out)
    assert sorted(output) == ["events", "users"]


def test_main_balanced(tmp_path, capsys):
    path = tmp_path / "balanced.json"
    path.write_text(json.dumps(mock_data.balanced_cluster), encoding="utf-8")
    assert main([str(path)]) == 0
    result = json.loads(capsys.readouterr().out)[ENSEMBLE_TABLE_NAME]
    assert result["balanced"]
    assert result["plans"] == []


def test_malformed_server_name_is_invalid():
    with pytest.raises(ValidationError, match="host,abc"):
        ClusterDescription.model_validate({"servers": {"host,abc": []}})


def test_main_reports_malformed_server_name(tmp_path, capsys):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"servers": {"host,abc": []}}), encoding="utf-8")
    with pytest.raises(SystemExit) as exc_info:
        main([str(path)])
    assert exc_info.value.code == 2
    err = capsys.readouterr().err
    assert "host,abc" in err
    assert "Traceback" not in err


def test_main_reports_missing_file(tmp_path, capsys):
    with pytest.raises(SystemExit):
        main([str(tmp_path / "missing.json")])
    assert "missing.json" in capsys.readouterr().err

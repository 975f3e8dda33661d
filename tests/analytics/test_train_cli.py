"""
Tests for the training CLI.
"""

import json

import pandas as pd
import pytest

from src.analytics.train import build_endpoint, build_overrides, load_rows, main, parse_arguments


@pytest.fixture
def rows_csv(tmp_path, sensor_rows):
    """Sensor rows written to a CSV file."""
    path = tmp_path / "sensors.csv"
    pd.DataFrame(sensor_rows).to_csv(path, index=False)
    return path


class TestArguments:
    """Tests for argument handling."""

    def test_overrides_only_include_given_values(self):
        """Unset tuning flags do not override the configuration."""
        args = parse_arguments(["--rows", "r.csv", "--model", "anomaly", "--eps", "0.3"])

        assert build_overrides(args) == {"eps": 0.3}

    def test_endpoint_from_arguments(self):
        """Endpoint settings default to the rows file and flags."""
        args = parse_arguments(
            [
                "--rows", "data/orders.csv",
                "--model", "recommendation",
                "--fields", "amount", "region",
                "--id-field", "order_id",
                "--batch-size", "50",
            ]
        )

        endpoint = build_endpoint(args, {})

        assert endpoint.db_table == "orders"
        assert endpoint.allow_read == ["amount", "region"]
        assert endpoint.id_field == "order_id"
        assert endpoint.batch_size == 50

    def test_config_file_settings(self):
        """Settings from a config file are used unless overridden."""
        args = parse_arguments(["--rows", "r.csv", "--model", "anomaly", "--table", "t"])

        endpoint = build_endpoint(args, {"dbTable": "from_file", "batchSize": 10})

        assert endpoint.db_table == "t"
        assert endpoint.batch_size == 10


class TestLoadRows:
    """Tests for reading rows files."""

    def test_csv(self, rows_csv):
        rows = load_rows(str(rows_csv))

        assert len(rows) == 7
        assert rows[0]["temp"] == 0.0

    def test_json_records(self, tmp_path, sensor_rows):
        path = tmp_path / "sensors.json"
        path.write_text(json.dumps(sensor_rows))

        rows = load_rows(str(path))

        assert [row["id"] for row in rows] == list(range(1, 8))

    def test_unsupported_format(self, tmp_path):
        with pytest.raises(ValueError, match="Unsupported"):
            load_rows(str(tmp_path / "rows.parquet"))


class TestMain:
    """Tests for the CLI entry point."""

    def test_train_and_write_model(self, rows_csv, tmp_path):
        """A model is trained and persisted as JSON."""
        output = tmp_path / "model.json"

        exit_code = main(
            [
                "--rows", str(rows_csv),
                "--model", "anomaly",
                "--fields", "temp", "load",
                "--eps", "0.2",
                "--output", str(output),
            ]
        )

        assert exit_code == 0
        data = json.loads(output.read_text())
        assert data["model_type"] == "anomaly"
        assert data["stats"]["num_anomalies"] == 1

    def test_incremental_update(self, rows_csv, tmp_path):
        """An existing model is loaded and updated."""
        output = tmp_path / "model.json"
        args = ["--rows", str(rows_csv), "--model", "anomaly", "--fields", "temp", "load"]
        assert main(args + ["--eps", "0.2", "--output", str(output)]) == 0

        assert main(args + ["--existing", str(output), "--output", str(output)]) == 0

        data = json.loads(output.read_text())
        assert data["stats"]["total_points"] == 14
        assert data["config"]["eps"] == 0.2

    def test_model_to_stdout(self, rows_csv, capsys):
        """Without --output the model is printed."""
        exit_code = main(
            ["--rows", str(rows_csv), "--model", "recommendation", "--fields", "temp", "load"]
        )

        assert exit_code == 0
        assert json.loads(capsys.readouterr().out)["model_type"] == "recommendation"

    def test_missing_rows_file(self, tmp_path):
        """Errors are reported with a non-zero exit code."""
        assert main(["--rows", str(tmp_path / "missing.csv"), "--model", "anomaly"]) == 1

    def test_no_model_trained(self, tmp_path):
        """A file without usable fields produces no model."""
        path = tmp_path / "empty.json"
        path.write_text(json.dumps([{"tags": None}, {"tags": None}]))

        assert main(["--rows", str(path), "--model", "anomaly"]) == 1

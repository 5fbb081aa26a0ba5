import json

import pytest

import main


def test_parse_args_values_and_switches():
    opts = main.parse_args(["--title", "Mug", "--tags", "a, b", "--no-ai", "--db", "--json", "out.json"])
    assert opts["title"] == "Mug"
    assert opts["tags"] == "a, b"
    assert opts["no_ai"] is True
    assert opts["db"] is True
    assert opts["json"] == "out.json"
    assert opts["process_sections"] is None


def test_parse_args_process_sections_limit():
    assert main.parse_args(["--process-sections"])["process_sections"] == 0
    assert main.parse_args(["--process-sections", "5"])["process_sections"] == 5


def test_parse_args_unknown_flag_exits():
    with pytest.raises(SystemExit):
        main.parse_args(["--bogus"])


def test_main_writes_json_report(tmp_path, write_json, capsys):
    rules = write_json("rules.json", [{"term": "replica", "risk_level": "high"}])
    policies = write_json("sections.json", [])
    out = tmp_path / "out" / "report.json"

    main.main([
        "--title", "Replica watch", "--description", "A replica of a classic",
        "--rules", str(rules), "--policies", str(policies),
        "--fallback-rules", str(tmp_path / "none.json"),
        "--no-ai", "--json", str(out),
    ])

    data = json.loads(out.read_text())
    assert data["report"]["totalIssues"] == 1
    assert data["report"]["complianceScore"] == 50
    assert data["metadata"]["rules_loaded"] == 1
    assert "Listing Guard" in capsys.readouterr().out


def test_main_empty_listing_exits(write_json):
    rules = write_json("rules.json", [])
    with pytest.raises(SystemExit) as exc:
        main.main(["--title", " ", "--rules", str(rules), "--no-ai"])
    assert exc.value.code == 1


def test_main_missing_rules_exits_with_data_error(tmp_path):
    with pytest.raises(SystemExit) as exc:
        main.main(["--title", "Mug", "--rules", str(tmp_path / "absent.json"), "--no-ai"])
    assert exc.value.code == 2

from __future__ import annotations

import json

from cardflow.core.cli import main


def _cards(write_card):
    write_card("shop/cart.json", {"type": "AdaptiveCard", "actions": [{"type": "Action.Submit", "data": {"step": "pay"}}]})
    write_card("shop/pay.json", {"type": "AdaptiveCard", "body": []})
    return write_card.root


def test_cli_scan_json(write_card, capsys):
    cards = _cards(write_card)

    rc = main(["scan", "--cards", str(cards), "--group-by", "folder", "--json"])
    payload = json.loads(capsys.readouterr().out)
    assert rc == 0
    assert [f["flow_name"] for f in payload["flows"]] == ["shop"]
    assert [c["card_id"] for c in payload["flows"][0]["cards"]] == ["cart", "pay"]


def test_cli_scan_text(write_card, capsys):
    cards = _cards(write_card)

    rc = main(["scan", "--cards", str(cards), "--group-by", "folder"])
    assert rc == 0
    assert "shop: 2 cards" in capsys.readouterr().out


def test_cli_generate_builtin(write_card, temp_dir, capsys):
    cards = _cards(write_card)
    out = temp_dir / "out"

    rc = main(["generate", "--cards", str(cards), "--out", str(out), "--group-by", "folder", "--backend", "builtin"])
    text = capsys.readouterr().out
    assert rc == 0
    assert "Cards processed: 2" in text
    assert "flows/main.ygtc" in text
    assert (out / "flows" / "main.ygtc").is_file()


def test_cli_generate_json(write_card, temp_dir, capsys):
    cards = _cards(write_card)

    rc = main(
        [
            "generate",
            "--cards",
            str(cards),
            "--out",
            str(temp_dir / "out"),
            "--group-by",
            "folder",
            "--backend",
            "builtin",
            "--strict",
            "--json",
        ]
    )
    payload = json.loads(capsys.readouterr().out)
    assert rc == 0
    assert payload["flows"][0]["order"] == ["pay", "cart"]
    assert payload["diagnostics"]["cards_processed"] == 2
    assert payload["warnings"] == []


def test_cli_handled_error_exit_code(temp_dir, capsys):
    rc = main(["generate", "--cards", str(temp_dir / "missing"), "--out", str(temp_dir / "out"), "--backend", "builtin", "--json"])
    payload = json.loads(capsys.readouterr().out)
    assert rc == 2
    assert payload["ok"] is False
    assert payload["error"] == "SpecError"


def test_cli_strict_scan_of_empty_dir(temp_dir, capsys):
    empty = temp_dir / "empty"
    empty.mkdir()

    rc = main(["scan", "--cards", str(empty), "--strict"])
    assert rc == 2
    assert "ERROR:" in capsys.readouterr().err

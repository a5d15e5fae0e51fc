#!/usr/bin/env python3
from __future__ import annotations

import importlib
import json
import os
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from fastapi.testclient import TestClient


@dataclass
class Scenario:
  name: str
  turns: list[str]
  # Expected option values (or None for no question) per turn.
  expected_options: list[list[str] | None]
  expected_flags: dict[str, Any] = field(default_factory=dict)


def run() -> int:
  repo_root = Path(__file__).resolve().parents[1]
  backend_dir = repo_root / "backend"
  if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

  # Deterministic weather and fallback picks for repeatable reports.
  os.environ.setdefault("TRIAGE_RANDOM_SEED", "7")
  os.environ.setdefault("LOG_LEVEL", "WARNING")

  backend_module = importlib.import_module("main")
  backend_module = importlib.reload(backend_module)

  from chat_protocol import EncryptedChatClient

  run_id = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
  scenarios = [
    Scenario(
      name="Cold Triage With Medicine Suggestion",
      turns=["I have a cold", "1_5_hrs", "dry_cold", "suggest"],
      expected_options=[
        ["less_than_1hr", "1_5_hrs", "6_18_hrs", "more_than_1day"],
        ["dry_cold", "wet_cold"],
        ["taken", "suggest"],
        None,
      ],
      expected_flags={"showMedicines": True},
    ),
    Scenario(
      name="Cold Triage With Medicine Already Taken",
      turns=["cold again today", "more_than_1day", "wet_cold", "taken", "Paracetamol 2 hours ago"],
      expected_options=[
        ["less_than_1hr", "1_5_hrs", "6_18_hrs", "more_than_1day"],
        ["dry_cold", "wet_cold"],
        ["taken", "suggest"],
        [],
        None,
      ],
    ),
    Scenario(
      name="Payment Request",
      turns=["I want to pay 250"],
      expected_options=[None],
      expected_flags={"paymentRequest": {"amount": 250, "reason": "Chat Payment"}},
    ),
    Scenario(
      name="Doctor Component",
      turns=["Show me a specialist"],
      expected_options=[None],
      expected_flags={"componentType": "doctors"},
    ),
  ]

  results: list[dict[str, Any]] = []

  with TestClient(backend_module.app) as client:
    health = client.get("/health").json()
    key = backend_module.container.keys.resolve()
    for index, scenario in enumerate(scenarios):
      chat = EncryptedChatClient(http=client, key=key, user_id=f"smoke-{run_id}-{index}")
      scenario_result: dict[str, Any] = {"name": scenario.name, "turns": []}
      passed = True
      last_wire: dict[str, Any] = {}
      for message, expected in zip(scenario.turns, scenario.expected_options):
        try:
          reply = chat.send(message)
        except Exception as exc:
          scenario_result["error"] = f"{message!r} failed: {exc}"
          passed = False
          break
        last_wire = reply.envelope.to_wire()
        actual = reply.option_values if reply.envelope.question_data is not None else None
        turn_ok = actual == expected and reply.envelope.encrypted
        passed = passed and turn_ok
        scenario_result["turns"].append(
          {
            "sent": message,
            "reply_preview": reply.text[:200],
            "message_type": reply.envelope.message_type,
            "options": actual,
            "ok": turn_ok,
          }
        )
      for flag, value in scenario.expected_flags.items():
        if last_wire.get(flag) != value:
          passed = False
          scenario_result.setdefault("error", f"Expected {flag}={value!r}, got {last_wire.get(flag)!r}")
      scenario_result["pass"] = passed
      results.append(scenario_result)

  passed_count = sum(1 for item in results if item.get("pass"))
  failed = len(results) - passed_count
  timestamp = datetime.now(timezone.utc).isoformat()

  report_lines = [
    "# Encrypted Chat E2E Smoke Report",
    "",
    f"- Timestamp (UTC): `{timestamp}`",
    f"- Codec self-test: `{health.get('codec_ok')}`",
    f"- Key id: `{health.get('key_id')}`",
    f"- Total scenarios: `{len(results)}`",
    f"- Passed: `{passed_count}`",
    f"- Failed: `{failed}`",
    "",
    "## Scenario Results",
    "",
  ]

  for item in results:
    status = "PASS" if item.get("pass") else "FAIL"
    report_lines.append(f"### {status} - {item['name']}")
    if item.get("error"):
      report_lines.append(f"- Error: `{item['error']}`")
    report_lines.append("```json")
    report_lines.append(json.dumps(item["turns"], indent=2, ensure_ascii=False))
    report_lines.append("```")
    report_lines.append("")

  report_path = repo_root / "CHAT_E2E_SMOKE_REPORT.md"
  report_path.write_text("\n".join(report_lines), encoding="utf-8")
  print(f"Wrote report: {report_path}")
  print(f"Passed {passed_count}/{len(results)} scenarios.")

  return 0 if failed == 0 else 1


if __name__ == "__main__":
  raise SystemExit(run())

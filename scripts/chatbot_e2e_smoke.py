#!/usr/bin/env python3
from __future__ import annotations

import importlib
import json
import os
import sys
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from fastapi.testclient import TestClient


@dataclass
class Scenario:
  name: str
  message: str
  language: str


def reply_summary(body: Any) -> dict[str, Any]:
  if not isinstance(body, dict):
    return {}
  reply = body.get("reply")
  if not isinstance(reply, dict):
    return {}
  citations = reply.get("citations")
  return {
    "role": reply.get("role"),
    "failed": reply.get("failed"),
    "preview": str(reply.get("text") or "")[:240],
    "citation_kinds": [item.get("kind") for item in citations] if isinstance(citations, list) else [],
  }


def run() -> int:
  repo_root = Path(__file__).resolve().parents[1]
  backend_dir = repo_root / "backend"
  if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

  # Smoke runs never touch the developer's cache file.
  os.environ.setdefault("LIFEGUARD_DB_PATH", str(Path(tempfile.mkdtemp()) / "lifeguard-smoke.sqlite"))

  backend_module = importlib.import_module("main")
  backend_module = importlib.reload(backend_module)

  user_id = f"smoke-user-{datetime.now(timezone.utc).strftime('%Y%m%d%H%M%S')}"
  headers = {"Authorization": f"Bearer {user_id}"}
  assistant_configured = backend_module.container.orchestrator.configured

  scenarios = [
    Scenario(name="CPR Guidance", message="My father collapsed and is not breathing. What do I do?", language="en-US"),
    Scenario(name="Burn Follow-up", message="I spilled boiling water on my hand.", language="en-US"),
    Scenario(name="Hindi Reply", message="Mujhe saanp ne kaat liya hai.", language="hi-IN"),
  ]

  results: list[dict[str, Any]] = []

  with TestClient(backend_module.app) as client:
    for scenario in scenarios:
      profile_response = client.post(
        "/profile",
        headers=headers,
        json={
          "display_name": "Smoke Tester",
          "emergency_contact": "+91 90000 00000",
          "blood_group": "O+",
          "language": scenario.language,
        },
      )
      chat_response = client.post("/chat/send", headers=headers, json={"message": scenario.message})

      scenario_result: dict[str, Any] = {
        "name": scenario.name,
        "language": scenario.language,
        "profile_status_code": profile_response.status_code,
        "chat_status_code": chat_response.status_code,
      }

      try:
        chat_body = chat_response.json()
      except Exception:
        chat_body = {"raw": chat_response.text[:500]}
      summary = reply_summary(chat_body)
      scenario_result["reply"] = summary
      scenario_result["transcript_length"] = chat_body.get("transcript_length") if isinstance(chat_body, dict) else None

      # Without an API key the assistant still answers, with a failed notice.
      expect_failed = not assistant_configured
      scenario_result["pass"] = (
        profile_response.status_code == 200
        and chat_response.status_code == 200
        and summary.get("role") == "assistant"
        and summary.get("failed") is expect_failed
      )
      if not scenario_result["pass"]:
        scenario_result["error"] = "Chat did not produce the expected assistant reply."

      results.append(scenario_result)

    history_response = client.get("/chat/history", headers=headers)
    history_items = history_response.json().get("items", []) if history_response.status_code == 200 else []
    results.append(
      {
        "name": "History Continuity",
        "chat_status_code": history_response.status_code,
        "transcript_length": len(history_items),
        "pass": len(history_items) == 2 * len(scenarios),
      }
    )

    places_response = client.post(
      "/places/nearby",
      headers=headers,
      json={"latitude": 17.385, "longitude": 78.4867},
    )
    places_body = places_response.json() if places_response.status_code == 200 else {}
    results.append(
      {
        "name": "Nearby Hospitals",
        "chat_status_code": places_response.status_code,
        "reply": {"preview": str(places_body.get("text") or "")[:240], "places": places_body.get("places")},
        "pass": places_response.status_code == 200 and isinstance(places_body.get("places"), list),
      }
    )

  passed = sum(1 for item in results if item.get("pass"))
  failed = len(results) - passed
  timestamp = datetime.now(timezone.utc).isoformat()

  report_lines = [
    "# LifeGuard Chat Smoke Report",
    "",
    f"- Timestamp (UTC): `{timestamp}`",
    f"- Assistant configured: `{assistant_configured}`",
    f"- Remote store: `{os.getenv('LIFEGUARD_REMOTE_STORE_URL') or 'local cache only'}`",
    f"- Total scenarios: `{len(results)}`",
    f"- Passed: `{passed}`",
    f"- Failed: `{failed}`",
    "",
    "## Scenario Results",
    "",
  ]

  for item in results:
    status = "PASS" if item.get("pass") else "FAIL"
    report_lines.append(f"### {status} - {item['name']}")
    if item.get("language"):
      report_lines.append(f"- Language: `{item['language']}`")
    report_lines.append(f"- Status code: `{item.get('chat_status_code')}`")
    if item.get("transcript_length") is not None:
      report_lines.append(f"- Transcript length: `{item['transcript_length']}`")
    if item.get("error"):
      report_lines.append(f"- Error: `{item['error']}`")
    if item.get("reply"):
      report_lines.append("- Reply:")
      report_lines.append("```json")
      report_lines.append(json.dumps(item["reply"], indent=2, ensure_ascii=False))
      report_lines.append("```")
    report_lines.append("")

  report_path = repo_root / "LIFEGUARD_SMOKE_REPORT.md"
  report_path.write_text("\n".join(report_lines), encoding="utf-8")
  print(f"Wrote report: {report_path}")
  print(f"Passed {passed}/{len(results)} scenarios.")

  return 0 if failed == 0 else 1


if __name__ == "__main__":
  raise SystemExit(run())

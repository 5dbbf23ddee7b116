"""Shared board payloads and test doubles."""

from datetime import datetime, timezone
from typing import List

from courtwatch.models import NotificationIntent
from courtwatch.notifiers.base import NotificationError

BOARD_URL = "https://board.example.test/streamingboard/"
FEED_URL = "https://board.example.test/streamingboard/indexrequest.php"
ORIGIN = "https://board.example.test"
SCRAPED_AT = datetime(2026, 10, 17, 10, 30, tzinfo=timezone.utc)

SAMPLE_MARKUP = """
<html><body>
<input id="currdate" value="17/10/2026">
<div id="dv_C10" class="card page_2">
  <div class="card-header"><span id="court_C10">COURT NO: 10</span></div>
  <p class="card-category"><b>HON'BLE MS. JUSTICE C</b></p>
  <img class="photoclass" src="photos/c.jpg">
</div>
<div id="dv_CX" class="card page_3">
  <div class="card-title">HON'BLE MR. JUSTICE X</div>
  <span id="court_CX">COURT NO: A</span>
</div>
<div id="dv_C1" class="card page_1">
  <div class="card-header"><span id="court_C1">COURT NO: 1</span></div>
  <p class="card-category"><b>HON'BLE MR. JUSTICE A [Live]</b></p>
  <img class="photoclass" src="./photos/a1.jpg">
  <img class="photoclass" data-src="https://cdn.example.test/a2.jpg">
  <a href="/streaming/court1">Watch live</a>
  <span class="blink_me">LIVE</span>
</div>
<div id="dv_C2" class="card">
  <div class="card-title">HON'BLE MR.   JUSTICE B</div>
  <div class="court-label">COURT NO: 2</div>
  <img class="photoclass" src="photos/b.jpg">
  <a href="https://stream.example.test/court2">Watch</a>
  <span id="srno_C2">Sr. 7</span>
</div>
</body></html>
"""

SAMPLE_ROWS = [
    {"courtcode": "C10", "gsrno": "", "caseinfo": "COURT SITTING OVER"},
    {"courtcode": "CX", "gsrno": "abc", "caseinfo": "-", "causelisttype": ""},
    {
        "courtcode": "C1",
        "gsrno": "12",
        "caseinfo": "SCA/100/2024",
        "causelisttype": "FRESH",
    },
    {"courtcode": "C2", "gsrno": "-", "caseinfo": "CRA/5/2023 (RECESS)"},
    {"courtcode": "", "caseinfo": "NO/CODE/1"},
    "not a row",
]


class RecordingNotifier:
    """Notifier double that remembers what it was asked to send."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[NotificationIntent] = []

    def send(self, intent: NotificationIntent) -> str:
        if self.fail:
            raise NotificationError("gateway unavailable")
        self.sent.append(intent)
        return f"msg-{len(self.sent)}"

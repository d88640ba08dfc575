"""Inline page used by the self-contained ``fixture`` scenario."""

from __future__ import annotations

from urllib.parse import quote


FIXTURE_TITLE = "Horrible looking test-page"

FIXTURE_HTML = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>Horrible looking test-page</title>
  <style>body { background: #f0f; font-family: "Comic Sans MS", cursive; }</style>
</head>
<body>
  <h1>Horrible looking test-page</h1>
  <div id="slot"></div>
  <button id="increment" type="button">+1</button>
  <input id="echo" type="text" autocomplete="off">
  <p id="echo-output"></p>
  <script>
    var count = 0;
    // Render the counter late so callers have to poll for it.
    setTimeout(function () {
      var counter = document.createElement("span");
      counter.id = "counter";
      counter.textContent = String(count);
      document.getElementById("slot").appendChild(counter);
    }, 750);
    document.getElementById("increment").addEventListener("click", function () {
      count += 1;
      var counter = document.getElementById("counter");
      if (counter) { counter.textContent = String(count); }
    });
    document.getElementById("echo").addEventListener("input", function (ev) {
      document.getElementById("echo-output").textContent = ev.target.value;
    });
  </script>
</body>
</html>
"""


def as_data_url(html: str) -> str:
    return "data:text/html;charset=utf-8," + quote(html)


# Browsers refuse cookies on data: URLs; telemetry here relies on the grid proxy taking webgrid: cookies itself.
FIXTURE_URL = as_data_url(FIXTURE_HTML)

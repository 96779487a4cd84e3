"""HTML for the overview and dashboard pages."""
from __future__ import annotations
from html import escape
from string import Template
from typing import Iterable
from .models import DashboardData, NormalizedReading

_STYLE = """
body { font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif; margin: 0;
       padding: 20px; background-color: #f5f5f5; }
.container { max-width: 1200px; margin: 0 auto; }
h1 { text-align: center; color: #333; border-bottom: 3px solid #4CAF50; padding-bottom: 10px; }
.card { background-color: white; padding: 20px; border-radius: 10px;
        box-shadow: 0 2px 10px rgba(0,0,0,0.1); margin-bottom: 20px; }
.stats { display: grid; grid-template-columns: repeat(auto-fit, minmax(200px, 1fr)); gap: 20px; }
.stat-number { font-size: 2em; font-weight: bold; color: #4CAF50; text-align: center; }
.stat-label { color: #666; text-align: center; }
.sensor-data { border: 1px solid #ddd; margin-bottom: 20px; padding: 15px;
               border-radius: 5px; background-color: #f9f9f9; }
.sensor-header { font-weight: bold; padding-bottom: 10px; border-bottom: 2px solid #4CAF50; }
.sensor-values { display: grid; grid-template-columns: repeat(auto-fit, minmax(200px, 1fr));
                 gap: 10px; margin-top: 10px; }
.sensor-value { background-color: white; padding: 10px; border-radius: 5px;
                border-left: 4px solid #2196F3; }
.no-data { text-align: center; color: #666; font-style: italic; padding: 50px; }
.links a { display: inline-block; margin: 10px; padding: 12px 24px; background-color: #4CAF50;
           color: white; text-decoration: none; border-radius: 5px; }
"""

_PAGE = Template("""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>$title</title>
    <style>$style</style>
</head>
<body>
    <div class="container">
$body
    </div>
$script
</body>
</html>
""")

_AUTO_REFRESH = """    <script>
        setTimeout(function() { location.reload(); }, 30000);
    </script>"""


def _page(title: str, body: str, script: str = "") -> str:
    return _PAGE.substitute(title=escape(title), style=_STYLE, body=body, script=script)


def _stat(value: object, label: str) -> str:
    return (
        f'<div class="card"><div class="stat-number">{escape(str(value))}</div>'
        f'<div class="stat-label">{escape(label)}</div></div>'
    )


def render_overview(
    *,
    current_time: str,
    environment: str,
    log_level: str,
    memory_count: int,
    max_store: int,
    file_log: bool,
    server_addr: str,
    database: bool,
) -> str:
    body = f"""
        <h1>Sensor Logger Server</h1>
        <div class="card">
            <strong>Server is running</strong><br>
            Current time: {escape(current_time)}<br>
            Environment: {escape(environment)}<br>
            Log level: {escape(log_level)}
        </div>
        <div class="stats">
            {_stat(memory_count, "messages in memory")}
            {_stat(max_store, "memory retention cap")}
            {_stat("enabled" if file_log else "disabled", "raw file archive")}
            {_stat("connected" if database else "unavailable", "database")}
        </div>
        <div class="card">
            Set the push URL in the Sensor Logger app to
            <code>http://{escape(server_addr)}/data</code>
        </div>
        <div class="links">
            <a href="/dashboard">Dashboard</a>
            <a href="/api/data">Memory API</a>
            <a href="/api/db/data">Database API</a>
            <a href="/api/db/devices">Devices API</a>
            <a href="/api/db/stats">Stats API</a>
        </div>"""
    return _page("Sensor Logger Server", body)


def _reading(r: NormalizedReading) -> str:
    values = "".join(
        f'<div class="sensor-value"><strong>{escape(v.name)}</strong><br>'
        f"{escape(v.value_text)} {escape(v.unit)}<br>"
        f"<small>{escape(v.description)}</small></div>"
        for v in r.values
    )
    return (
        f'<div class="sensor-data"><div class="sensor-header">'
        f"{escape(r.sensor_type)} - {escape(r.readable_time_text)} ({escape(r.accuracy_text)})"
        f'</div><div class="sensor-values">{values}</div></div>'
    )


def _readings(readings: Iterable[NormalizedReading]) -> str:
    return "\n".join(_reading(r) for r in readings)


def render_dashboard(data: DashboardData) -> str:
    if data.has_data:
        latest = _readings(data.latest_data)
    else:
        latest = '<div class="no-data">No data yet. Make sure the Sensor Logger app is pushing data.</div>'

    body = f"""
        <a href="/">&larr; Back</a>
        <h1>Sensor Data Dashboard</h1>
        <div class="stats">
            {_stat(data.total_messages, "messages")}
            {_stat(data.total_readings, "readings")}
            {_stat(data.sensor_type_count, "sensor types")}
            {_stat(data.device_count, "devices")}
        </div>
        <div class="card">
            <h2>Latest sensor data</h2>
            {latest}
        </div>"""
    return _page("Sensor Data Dashboard", body, _AUTO_REFRESH)

# dashboard.py
import json
from html import escape
from typing import Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import HTMLResponse, JSONResponse

from sqljobs.config import SchedulerConfig
from sqljobs.jobs import JobTable
from sqljobs.models import JobStatus
from sqljobs.storage import Storage

# ---------- Shared UI ----------
BASE_STYLE = """
  body { font-family: Arial, sans-serif; margin: 0; background: #f9f9f9; color: #333; }
  h1 { background: #2196F3; color: white; padding: 15px; margin: 0; }
  h2 { margin-top: 30px; color: #2196F3; }
  .container { padding: 20px; }
  .navbar { background: #1976D2; padding: 10px 20px; display: flex; gap: 20px; }
  .navbar a { color: white; text-decoration: none; font-weight: bold; }
  .navbar a:hover { text-decoration: underline; }
  table { border-collapse: collapse; width: 100%; margin-top: 10px; background: white; }
  th, td { border: 1px solid #ddd; padding: 8px; text-align: left; }
  th { background-color: #2196F3; color: white; }
  tr:nth-child(even) { background-color: #f2f2f2; }
  canvas { margin-top: 20px; display: block; max-width: 600px; }
  a { color: #1976D2; }
  .cards { display: grid; grid-template-columns: repeat(auto-fit,minmax(220px,1fr)); gap: 16px; margin-top: 20px; }
  .card { background: white; border: 1px solid #ddd; border-radius: 6px; padding: 12px; }
  .muted { color: #555; }
"""

STATUS_COLORS = {
    JobStatus.PENDING.value: "#2196F3",
    JobStatus.RUNNING.value: "#FF9800",
    JobStatus.COMPLETED.value: "#4CAF50",
    JobStatus.FAILED.value: "#F44336",
}


def page(title: str, body_html: str, include_chart_js: bool = False) -> str:
    script_tag = '<script src="https://cdn.jsdelivr.net/npm/chart.js"></script>' if include_chart_js else ''
    return f"""
    <html>
    <head>
      <title>{escape(title)}</title>
      {script_tag}
      <style>{BASE_STYLE}</style>
    </head>
    <body>
      <h1>{escape(title)}</h1>
      <div class="navbar">
        <a href="/">🏠 Home</a>
        <a href="/metrics">📈 Metrics</a>
        <a href="/failed">🗑 Failed</a>
        <a href="/config">⚙ Config</a>
      </div>
      <div class="container">
        {body_html}
      </div>
    </body>
    </html>
    """


def _fmt_date(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "-"


def jobs_table(rows) -> str:
    html = """
    <table>
      <tr><th>ID</th><th>Name</th><th>Status</th><th>Attempts</th><th>Priority</th><th>Run at</th><th>Cron</th></tr>
    """
    for j in rows:
        html += (
            f"<tr><td><a href='/job/{j.id}'>{j.id}</a></td><td>{escape(j.name)}</td>"
            f"<td>{j.status.value}</td><td>{j.attempts}</td><td>{j.priority}</td>"
            f"<td>{_fmt_date(j.run_at)}</td><td>{escape(j.cron or '-')}</td></tr>"
        )
    html += "</table>"
    return html


def create_app(config: Optional[SchedulerConfig] = None, storage: Optional[Storage] = None) -> FastAPI:
    """Read-only dashboard over one jobs table."""
    config = config or SchedulerConfig.from_env()
    storage = storage or Storage(config.database)
    jobs = JobTable(storage, config.jobs_table)

    app = FastAPI(title="sqljobs dashboard")

    # ---------- Home ----------
    @app.get("/", response_class=HTMLResponse)
    def home():
        body = "<h2>Recent jobs</h2>" + jobs_table(jobs.list(limit=50))
        body += """
          <h2>Job statuses</h2>
          <canvas id="statusChart"></canvas>
          <script>
            async function loadChart() {
              const res = await fetch('/metrics/json');
              const data = await res.json();
              new Chart(document.getElementById('statusChart'), {
                type: 'pie',
                data: {
                  labels: data.labels,
                  datasets: [{ data: data.counts, backgroundColor: data.colors }]
                }
              });
            }
            loadChart();
          </script>
        """
        return page("📊 Jobs Dashboard", body, include_chart_js=True)

    # ---------- Metrics ----------
    @app.get("/metrics", response_class=HTMLResponse)
    def metrics_page():
        counts = jobs.count_by_status()
        cards = "".join(
            f'<div class="card"><h3>{key.title()}</h3><p>{count}</p></div>'
            for key, count in counts.items()
        )
        body = f"""
          <div class="cards">{cards}</div>
          <p class="muted">Tip: Use the CLI "status" command for scriptable outputs.</p>
        """
        return page("📈 Metrics", body)

    @app.get("/metrics/json", response_class=JSONResponse)
    def metrics_json():
        counts = jobs.count_by_status()
        return {
            **counts,
            "labels": list(counts),
            "counts": list(counts.values()),
            "colors": [STATUS_COLORS[k] for k in counts],
        }

    # ---------- Failed ----------
    @app.get("/failed", response_class=HTMLResponse)
    def failed_page():
        rows = jobs.list(status=JobStatus.FAILED, limit=200)
        body = "<h2>Failed jobs</h2>"
        if not rows:
            body += "<p class='muted'>No failed jobs.</p>"
        else:
            body += jobs_table(rows)
            body += "<p class='muted'>Use the CLI 'failed retry' command to re-enqueue.</p>"
        return page("🗑 Failed Jobs", body)

    # ---------- Config ----------
    @app.get("/config", response_class=HTMLResponse)
    def config_page():
        body = """
          <h2>Effective configuration</h2>
          <table>
            <tr><th>Key</th><th>Value</th></tr>
        """
        for key in ("database", "jobs_table", "max_concurrent_jobs", "process_every", "max_retries"):
            body += f"<tr><td>{key}</td><td>{escape(str(getattr(config, key)))}</td></tr>"
        body += "</table><h2>Persisted overrides</h2>"

        rows = storage.list_config()
        if not rows:
            body += "<p class='muted'>No config entries found.</p>"
        else:
            body += "<table><tr><th>Key</th><th>Value</th><th>Updated</th></tr>"
            for r in rows:
                body += f"<tr><td>{escape(r['key'])}</td><td>{escape(r['value'])}</td><td>{r['updated_at']}</td></tr>"
            body += "</table><p class='muted'>Use CLI config set/get to manage values.</p>"
        return page("⚙ Config", body)

    # ---------- Job detail ----------
    @app.get("/job/{job_id}", response_class=HTMLResponse)
    def job_detail(job_id: int):
        job = jobs.get(job_id)
        if job is None:
            return HTMLResponse(page("❌ Job not found", f"<p>Job {job_id} not found.</p>"), status_code=404)

        data = json.dumps(job.payload, indent=2) if job.payload is not None else "(none)"
        body = f"""
          <h2>Job {job.id}: {escape(job.name)}</h2>
          <div class="cards">
            <div class="card"><b>Status</b><p>{job.status.value}</p></div>
            <div class="card"><b>Attempts</b><p>{job.attempts}</p></div>
            <div class="card"><b>Priority</b><p>{job.priority}</p></div>
            <div class="card"><b>Cron</b><p>{escape(job.cron or '-')}</p></div>
          </div>

          <h3>Timestamps</h3>
          <table>
            <tr><th>Created</th><td>{_fmt_date(job.created_at)}</td></tr>
            <tr><th>Run at</th><td>{_fmt_date(job.run_at)}</td></tr>
            <tr><th>Updated</th><td>{_fmt_date(job.updated_at)}</td></tr>
          </table>

          <h3>Data</h3>
          <pre>{escape(data)}</pre>
        """
        return page(f"🔎 Job {job.id} Detail", body)

    # ---------- JSON API ----------
    @app.get("/api/jobs", response_class=JSONResponse)
    def api_jobs(status: Optional[JobStatus] = None, limit: int = Query(50, ge=1, le=500)):
        return [j.to_dict() for j in jobs.list(status=status, limit=limit)]

    @app.get("/api/jobs/{job_id}", response_class=JSONResponse)
    def api_job(job_id: int):
        job = jobs.get(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
        return job.to_dict()

    return app

"""Two variants of a small web app to compare against each other.

Both variants serve the same pages; the candidate answers faster.
"""

import asyncio

from fastapi import FastAPI, Form, HTTPException
from fastapi.responses import HTMLResponse, RedirectResponse

app = FastAPI(title="Mock Service")

# Server-side delay per variant, in seconds.
VARIANT_DELAYS = {"baseline": 0.12, "candidate": 0.04}

LOGIN_PAGE = """<!doctype html>
<html>
<head><title>{variant} - Login</title></head>
<body>
  <main>
    <form method="post" action="/{variant}/login">
      <input id="username" name="username" type="email" placeholder="Email">
      <input id="password" name="password" type="password" placeholder="Password">
      <button type="submit">Sign in</button>
    </form>
  </main>
</body>
</html>
"""

DASHBOARD_PAGE = """<!doctype html>
<html>
<head><title>{variant} - Dashboard</title></head>
<body>
  <nav data-testid="navigation"><a href="/{variant}/dashboard">Home</a></nav>
  <main data-testid="dashboard">
    <div data-testid="stats" class="stats">Users: <span id="users">-</span></div>
    <div data-testid="card" class="card">Welcome back</div>
    <table data-testid="table"><tr><td>row</td></tr></table>
    <svg data-testid="chart" width="120" height="40"></svg>
  </main>
  <script>
    fetch("/{variant}/api/dashboard")
      .then((r) => r.json())
      .then((d) => {{ document.getElementById("users").textContent = d.users; }});
  </script>
</body>
</html>
"""


async def _delay(variant: str) -> None:
    if variant not in VARIANT_DELAYS:
        raise HTTPException(status_code=404, detail=f"unknown variant: {variant}")
    await asyncio.sleep(VARIANT_DELAYS[variant])


@app.get("/{variant}/login", response_class=HTMLResponse)
async def login_page(variant: str):
    await _delay(variant)
    return LOGIN_PAGE.format(variant=variant)


@app.post("/{variant}/login")
async def login(variant: str, username: str = Form(""), password: str = Form("")):
    await _delay(variant)
    if not username or not password:
        raise HTTPException(status_code=401, detail="missing credentials")
    return RedirectResponse(url=f"/{variant}/dashboard", status_code=303)


@app.get("/{variant}/dashboard", response_class=HTMLResponse)
async def dashboard_page(variant: str):
    await _delay(variant)
    return DASHBOARD_PAGE.format(variant=variant)


@app.get("/{variant}/api/data")
async def api_data(variant: str):
    await _delay(variant)
    return {"items": [{"id": i, "value": i * 10} for i in range(1, 6)]}


@app.get("/{variant}/api/user")
async def api_user(variant: str):
    await _delay(variant)
    return {"username": "testuser@example.com", "variant": variant}


@app.get("/{variant}/api/dashboard")
async def api_dashboard(variant: str):
    await _delay(variant)
    return {"users": 42, "variant": variant}


# Run with: uvicorn mock_service.app:app --port 8001 --reload

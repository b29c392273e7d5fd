# app.py - Booth Collect
# Phone-OTP field app: booth registration, household entry, admin report + exports.

from __future__ import annotations

import html
import io
import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

from flask import Flask, request, jsonify, redirect, url_for, send_file, flash, get_flashed_messages, g, session
from werkzeug.utils import secure_filename

import config
import exports as exp
import households as hh
import profiles as prof
from app_logging import configure_logging
from backend import BackendError, get_auth
from booths import BOOTH_NUMBERS
from db import init_db
from models import AuthUser, OtpChallenge
from watchdog import ACTIVITY_KEY, STATE_EXPIRED, SessionActivityStore, SessionWatchdog, system_clock_ms

configure_logging()
logger = logging.getLogger(__name__)

APP_NAME = config.APP_NAME
APP_VERSION = config.APP_VERSION
APP_ENV = config.APP_ENV
SECRET_KEY = config.SECRET_KEY or secrets.token_urlsafe(32)
PHONE_COUNTRY_CODE = config.PHONE_COUNTRY_CODE
RECAPTCHA_SITE_KEY = config.RECAPTCHA_SITE_KEY

app = Flask(__name__)
app.secret_key = SECRET_KEY
app.permanent_session_lifetime = timedelta(days=7)
app.config["MAX_CONTENT_LENGTH"] = 1 * 1024 * 1024
app.config["SESSION_COOKIE_SAMESITE"] = "Lax"

UI_BRAND = {
    "name": APP_NAME,
    "primary": "#2e7d32",
}

LOGIN_MESSAGES = {
    "phone_invalid": "Please enter a valid 10-digit mobile number",
    "otp_invalid": "Please enter a valid 6-digit OTP",
    "no_confirmation": "Confirmation result not found. Please send OTP again.",
    "send_failed": "Failed to send OTP",
    "verify_failed": "Invalid OTP",
    "expired": "OTP expired. Please send OTP again.",
    "too_many": "Too many attempts. Please try again later.",
    "session_expired": "Session expired after inactivity. Please log in again.",
}

# Backend error codes -> user-facing login text
_OTP_ERROR_CODES = {
    "INVALID_CODE": "verify_failed",
    "INVALID_SESSION_INFO": "no_confirmation",
    "SESSION_EXPIRED": "expired",
    "CODE_EXPIRED": "expired",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "too_many",
    "QUOTA_EXCEEDED": "too_many",
    "INVALID_PHONE_NUMBER": "phone_invalid",
}

# Endpoints that never touch the session watchdog
_WATCHDOG_EXEMPT = {"static", "healthz", "ui_login", "ui_logout"}

# Logout is a form POST so a cross-site link or image cannot end the session
LOGOUT_FORM = """<form method="POST" action="__LOGOUT_URL__" class="inline"><button class="btn" type="submit">Logout</button></form>"""

# Client half of the inactivity watchdog. Mirrors watchdog.SessionWatchdog:
# marker in localStorage, one pending timer, visibility re-checks expiry.
WATCHDOG_JS = """
<script>
(function () {
  var KEY = "__ACTIVITY_KEY__", TIMEOUT = __TIMEOUT_MS__, PING_GAP = __PING_MS__;
  var EVENTS = ["mousemove", "keydown", "click", "touchstart", "scroll"];
  var timer = null, pingTimer = null, lastPing = 0, expired = false, own = null;
  function now() { return Date.now(); }
  function read() {
    try { var v = parseInt(localStorage.getItem(KEY) || "", 10); return isNaN(v) ? null : v; }
    catch (e) { return null; }
  }
  function write(v) { own = v; try { localStorage.setItem(KEY, String(v)); } catch (e) {} }
  function stale() { var m = read(); return m !== null && now() - m >= TIMEOUT; }
  function expire() {
    if (expired) return;
    expired = true;
    if (timer) clearTimeout(timer);
    if (pingTimer) clearTimeout(pingTimer);
    try { localStorage.removeItem(KEY); } catch (e) {}
    var form = document.createElement("form");
    form.method = "POST";
    form.action = "/logout";
    var reason = document.createElement("input");
    reason.type = "hidden";
    reason.name = "reason";
    reason.value = "timeout";
    form.appendChild(reason);
    document.body.appendChild(form);
    form.submit();
  }
  function fire() {
    var m = read();
    if (m !== null && own !== null && m > own && now() - m < TIMEOUT) { own = m; schedule(TIMEOUT - (now() - m)); return; }
    expire();
  }
  function schedule(delay) { if (timer) clearTimeout(timer); timer = setTimeout(fire, Math.max(0, delay)); }
  function ping(ev) {
    var wait = PING_GAP - (now() - lastPing);
    if (wait > 0) {
      // Throttled: one trailing ping carries the newest marker.
      if (!pingTimer) pingTimer = setTimeout(function () { pingTimer = null; ping(ev); }, wait);
      return;
    }
    lastPing = now();
    fetch("/session/activity", {
      method: "POST", credentials: "same-origin",
      headers: {"Content-Type": "application/json"},
      body: JSON.stringify({event: ev, last_activity: read()})
    }).then(function (r) { if (r.status === 401) expire(); }).catch(function () {});
  }
  function reset(ev) { if (expired) return; write(now()); schedule(TIMEOUT); ping(ev); }
  if (stale()) { expire(); return; }
  var marker = read();
  schedule(marker === null ? TIMEOUT : TIMEOUT - (now() - marker));
  write(now());
  EVENTS.forEach(function (ev) {
    window.addEventListener(ev, function () { reset(ev); }, {passive: true});
  });
  document.addEventListener("visibilitychange", function () {
    if (document.visibilityState !== "visible") return;
    if (stale()) { expire(); return; }
    reset("visibilitychange");
  });
})();
</script>
"""

CLEAR_MARKER_JS = """
<script>try { localStorage.removeItem("__ACTIVITY_KEY__"); } catch (e) {}</script>
"""


def now_iso():
    return datetime.now().isoformat(timespec="seconds")


def _watchdog_script() -> str:
    return (
        WATCHDOG_JS.replace("__ACTIVITY_KEY__", ACTIVITY_KEY)
        .replace("__TIMEOUT_MS__", str(int(config.AUTO_LOGOUT_MS)))
        .replace("__PING_MS__", str(int(config.ACTIVITY_PING_SECONDS) * 1000))
    )


def _messages_html() -> str:
    out = []
    for category, text in get_flashed_messages(with_categories=True):
        cls = "msg-ok" if category == "success" else "msg-err"
        out.append(f"<div class='msg {cls}'>{html.escape(text)}</div>")
    return "".join(out)


def ui_shell(title: str, inner_html: str, show_nav: bool = True) -> str:
    """
    Wrap pages with the shared layout. Logged-in pages also carry the
    client-side inactivity watchdog.
    """
    user: Optional[AuthUser] = getattr(g, "user", None)
    profile = getattr(g, "profile", None)
    nav_html = ""
    if show_nav and user:
        role = "Admin" if profile is not None and profile.is_admin else "Booth user"
        nav_html = f"""
        <div class="nav">
          <a class="brand" href="/">{html.escape(UI_BRAND['name'])}</a>
          <div class="nav-actions">
            <span class="who">{html.escape(user.display_name or user.phone_number)} <span class="badge">{role}</span></span>
            <a class="btn" href="{url_for('ui_profile')}">Profile</a>
            {LOGOUT_FORM.replace('__LOGOUT_URL__', url_for('ui_logout'))}
          </div>
        </div>
        """
    script = _watchdog_script() if user else CLEAR_MARKER_JS.replace("__ACTIVITY_KEY__", ACTIVITY_KEY)
    return f"""<!doctype html>
<html lang="ml">
<head>
  <meta charset="utf-8" />
  <meta name="viewport" content="width=device-width,initial-scale=1" />
  <title>{html.escape(title)} - {html.escape(UI_BRAND['name'])}</title>
  <style>
    body {{ font-family: system-ui, sans-serif; margin: 0; background: #f5f7f5; color: #1b1b1b; }}
    .nav {{ display: flex; justify-content: space-between; align-items: center; padding: 12px 20px; background: {UI_BRAND['primary']}; color: #fff; }}
    .nav a {{ color: #fff; text-decoration: none; }}
    .brand {{ font-weight: 700; }}
    .nav-actions {{ display: flex; gap: 12px; align-items: center; }}
    .nav .inline {{ margin: 0; }}
    .nav .btn {{ margin: 0; padding: 6px 12px; font-size: 14px; background: rgba(255,255,255,.2); }}
    .badge {{ font-size: 11px; padding: 2px 6px; border-radius: 8px; background: rgba(255,255,255,.25); }}
    .container {{ max-width: 640px; margin: 24px auto; padding: 0 16px; }}
    .card {{ background: #fff; border-radius: 10px; padding: 20px; box-shadow: 0 1px 4px rgba(0,0,0,.08); }}
    label {{ display: block; font-weight: 600; margin: 12px 0 4px; }}
    input, textarea, select {{ width: 100%; padding: 12px; font-size: 16px; box-sizing: border-box; border: 1px solid #ccc; border-radius: 6px; }}
    button, .button {{ margin-top: 16px; padding: 12px 16px; font-size: 16px; border: none; border-radius: 6px; background: {UI_BRAND['primary']}; color: #fff; cursor: pointer; font-weight: 600; text-decoration: none; display: inline-block; }}
    button[disabled], .button.disabled {{ background: #9e9e9e; cursor: not-allowed; pointer-events: none; }}
    .msg {{ padding: 12px 15px; border-radius: 5px; margin-bottom: 16px; }}
    .msg-ok {{ background: #d4edda; color: #155724; border-left: 4px solid #28a745; }}
    .msg-err {{ background: #f8d7da; color: #721c24; border-left: 4px solid #dc3545; }}
    .muted {{ color: #666; font-size: 13px; }}
    .filters {{ display: flex; gap: 16px; }}
    .filters > div {{ flex: 1; }}
  </style>
</head>
<body>
  {nav_html}
  <div class="container">
    {_messages_html()}
    {inner_html}
  </div>
  {script}
</body>
</html>
"""


# ---------------------------
# Session + watchdog
# ---------------------------

def _logout_current_session() -> None:
    user = AuthUser.from_session(session.get("user") or {})
    session.pop("user", None)
    session.pop("otp", None)
    session.pop(ACTIVITY_KEY, None)
    g.user = None
    g.profile = None
    get_auth().sign_out(user)
    if user:
        logger.info("Signed out %s", user.uid)


def session_watchdog() -> SessionWatchdog:
    # Lazily checked: each request re-mounts the watchdog from the session marker.
    return SessionWatchdog(
        logout=_logout_current_session,
        store=SessionActivityStore(session),
        timeout_ms=config.AUTO_LOGOUT_MS,
    )


def _merge_client_marker() -> None:
    """
    Take the page's last-activity marker from an activity ping when it is
    newer than the session's. Values from the future are capped at now.
    """
    data = request.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        return
    try:
        client_ms = int(data.get("last_activity"))
    except (TypeError, ValueError):
        return
    store = SessionActivityStore(session)
    client_ms = min(client_ms, system_clock_ms())
    current = store.get()
    if current is None or client_ms > current:
        store.set(client_ms)


@app.before_request
def _before_request_load_user():
    g.user = AuthUser.from_session(session.get("user") or {})
    g.profile = None
    g.watchdog = None
    if not g.user or request.endpoint in _WATCHDOG_EXEMPT:
        return None
    if request.endpoint == "session_activity":
        _merge_client_marker()
    wd = session_watchdog()
    g.watchdog = wd
    if wd.start() == STATE_EXPIRED:
        if request.path.startswith("/api/") or request.endpoint == "session_activity":
            return jsonify({"error": "session expired", "state": STATE_EXPIRED}), 401
        flash(LOGIN_MESSAGES["session_expired"], "error")
        return redirect(url_for("ui_login"))
    return None


def current_profile():
    """Profile of the signed-in user, fetched once per request. None if unregistered."""
    if getattr(g, "profile", None) is not None:
        return g.profile
    user = getattr(g, "user", None)
    if not user:
        return None
    res = prof.get_profile(user)
    if not res.ok:
        raise BackendError(res.error)
    g.profile = res.value
    return g.profile


def user_gate():
    if getattr(g, "user", None):
        return None
    if request.path.startswith("/api/") or request.endpoint == "session_activity":
        return jsonify({"error": "login required"}), 401
    return redirect(url_for("ui_login"))


def admin_gate():
    gate = user_gate()
    if gate:
        return gate
    try:
        profile = current_profile()
    except BackendError as e:
        return _backend_failure_page(str(e))
    if profile is None or not profile.is_admin:
        if request.path.startswith("/api/"):
            return jsonify({"error": "admin only"}), 403
        return ui_shell("Forbidden", "<div class='card'><h2>Admin access required</h2></div>"), 403
    return None


def _backend_failure_page(message: str):
    return ui_shell(
        "Error",
        f"<div class='card'><h2>Something went wrong</h2><div class='muted'>{html.escape(message)}</div></div>",
    ), 502


# ---------------------------
# Auth
# ---------------------------

def _otp_error_text(e: BackendError, default_key: str) -> str:
    key = _OTP_ERROR_CODES.get((e.code or "").strip().upper(), default_key)
    return LOGIN_MESSAGES[key]


@app.route("/login", methods=["GET", "POST"])
def ui_login():
    if getattr(g, "user", None):
        return redirect(url_for("landing"))
    err = ""
    pending = session.get("otp") or {}
    if request.method == "POST":
        action = (request.form.get("action") or "send").strip().lower()
        if action == "reset":
            session.pop("otp", None)
            return redirect(url_for("ui_login"))
        if action == "send":
            phone = (request.form.get("phone") or "").strip()
            if len(phone) != 10 or not phone.isdigit():
                err = LOGIN_MESSAGES["phone_invalid"]
            else:
                try:
                    challenge = get_auth().send_otp(
                        PHONE_COUNTRY_CODE + phone,
                        recaptcha_token=(request.form.get("g-recaptcha-response") or "").strip(),
                    )
                    session["otp"] = {
                        "session_info": challenge.session_info,
                        "phone_number": challenge.phone_number,
                    }
                    return redirect(url_for("ui_login"))
                except BackendError as e:
                    logger.warning("OTP send failed for %s: %s", phone[-4:], e)
                    err = _otp_error_text(e, "send_failed")
        elif action == "verify":
            code = (request.form.get("otp") or "").strip()
            if len(code) < 6:
                err = LOGIN_MESSAGES["otp_invalid"]
            elif not pending.get("session_info"):
                err = LOGIN_MESSAGES["no_confirmation"]
            else:
                challenge = OtpChallenge(
                    session_info=pending["session_info"],
                    phone_number=pending.get("phone_number") or "",
                )
                try:
                    user = get_auth().confirm_otp(challenge, code)
                    session.pop("otp", None)
                    session["user"] = user.to_session()
                    session[ACTIVITY_KEY] = session_watchdog().clock()
                    session.permanent = True
                    logger.info("Signed in %s", user.uid)
                    return redirect(url_for("landing"))
                except BackendError as e:
                    logger.warning("OTP verification failed: %s", e)
                    err = _otp_error_text(e, "verify_failed")
        pending = session.get("otp") or {}

    err_html = f"<div class='msg msg-err'>{html.escape(err)}</div>" if err else ""
    if not pending:
        recaptcha = ""
        if RECAPTCHA_SITE_KEY:
            recaptcha = (
                f"<div class='g-recaptcha' data-sitekey='{html.escape(RECAPTCHA_SITE_KEY)}'></div>"
                "<script src='https://www.google.com/recaptcha/api.js' async defer></script>"
            )
        form_html = f"""
        <form method="POST">
          <input type="hidden" name="action" value="send" />
          <label for="phone">മൊബൈൽ നമ്പർ</label>
          <input id="phone" name="phone" type="tel" inputmode="numeric" maxlength="10" placeholder="മൊബൈൽ നമ്പർ" required />
          {recaptcha}
          <button type="submit">OTP അയയ്ക്കുക</button>
        </form>
        """
    else:
        form_html = f"""
        <div class="muted">OTP sent to {html.escape(pending.get('phone_number') or '')}</div>
        <form method="POST">
          <input type="hidden" name="action" value="verify" />
          <label for="otp">OTP നൽകുക</label>
          <input id="otp" name="otp" type="text" inputmode="numeric" maxlength="6" placeholder="OTP നൽകുക" required />
          <button type="submit">സ്ഥിരീകരിക്കുക</button>
        </form>
        <form method="POST"><input type="hidden" name="action" value="reset" /><button type="submit">Change number</button></form>
        """
    page = f"""
    <div class="card">
      <h2>ലോഗിൻ</h2>
      {err_html}
      {form_html}
    </div>
    """
    return ui_shell("Login", page, show_nav=False)


@app.route("/logout", methods=["POST"])
def ui_logout():
    if session.get("user"):
        _logout_current_session()
    if request.form.get("reason") == "timeout":
        flash(LOGIN_MESSAGES["session_expired"], "error")
    return redirect(url_for("ui_login"))


@app.route("/session/activity", methods=["POST"])
def session_activity():
    gate = user_gate()
    if gate:
        return gate
    data = request.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        data = {}
    event = str(data.get("event") or "").strip()
    wd = getattr(g, "watchdog", None) or session_watchdog()
    state = wd.handle_event(event)
    if state == STATE_EXPIRED:
        return jsonify({"error": "session expired", "state": state}), 401
    return jsonify({"state": state, "last_activity": session.get(ACTIVITY_KEY)})


# ---------------------------
# Screens
# ---------------------------

@app.route("/")
def landing():
    if not getattr(g, "user", None):
        return redirect(url_for("ui_login"))
    try:
        profile = current_profile()
    except BackendError as e:
        return _backend_failure_page(str(e))
    if profile is not None and profile.is_admin:
        return redirect(url_for("ui_admin"))
    if profile is not None and profile.booth_number:
        return redirect(url_for("ui_household_new"))
    return redirect(url_for("ui_profile"))


@app.route("/profile", methods=["GET", "POST"])
def ui_profile():
    gate = user_gate()
    if gate:
        return gate
    user: AuthUser = g.user
    try:
        profile = current_profile()
    except BackendError as e:
        return _backend_failure_page(str(e))

    err = ""
    if request.method == "POST":
        booth = (request.form.get("booth") or "").strip()
        res = prof.save_booth(user, booth, existing=profile)
        if res.ok:
            flash(prof.SUCCESS_MESSAGES["booth_updated"], "success")
            return redirect(url_for("landing"))
        err = res.error

    phone = (profile.mobile_number if profile and profile.mobile_number else user.phone_number) or ""
    booth_now = profile.booth_number if profile else ""
    options = "".join(
        f"<option value='{b}' {'selected' if b == booth_now else ''}>{b}</option>" for b in BOOTH_NUMBERS
    )
    err_html = f"<div class='msg msg-err'>{html.escape(err)}</div>" if err else ""
    page = f"""
    <div class="card">
      <h2>Profile Settings</h2>
      {err_html}
      <p><b>Name:</b> {html.escape(user.display_name or 'N/A')}</p>
      <p><b>Phone:</b> {html.escape(phone)}</p>
      <p><b>Booth Number:</b> {html.escape(booth_now or '-')}</p>
      <form method="POST">
        <label for="booth">{'Change Booth Number' if booth_now else 'Booth Number'}</label>
        <select id="booth" name="booth" required>
          <option value="">--</option>
          {options}
        </select>
        <button type="submit">Save</button>
      </form>
    </div>
    """
    return ui_shell("Profile", page)


@app.route("/households/new", methods=["GET", "POST"])
def ui_household_new():
    gate = user_gate()
    if gate:
        return gate
    user: AuthUser = g.user
    try:
        profile = current_profile()
    except BackendError as e:
        return _backend_failure_page(str(e))
    if profile is None or not profile.booth_number:
        return redirect(url_for("ui_profile"))
    booth = profile.booth_number

    form_values = {name: "" for name in hh.FORM_FIELDS}
    if request.method == "POST":
        res = hh.submit_household(user, booth, request.form)
        if res.ok:
            flash(hh.SUBMIT_SUCCESS, "success")
            return redirect(url_for("ui_household_new"))
        flash(res.error, "error")
        # Keep what was typed when the entry is rejected.
        form_values = hh.clean_form(request.form)

    count_res = hh.count_today(user, booth)
    count_text = str(count_res.value) if count_res.ok else "-"

    def _input(name: str, input_type: str = "text", extra: str = "") -> str:
        return (
            f"<label for='{name}'>{hh.FORM_LABELS[name]}</label>"
            f"<input id='{name}' name='{name}' type='{input_type}' maxlength='{hh.MAX_LENGTHS[name]}' "
            f"value='{html.escape(form_values[name])}' {extra} />"
        )

    page = f"""
    <div class="card">
      <h2>പരിവാര വിവരങ്ങൾ</h2>
      <p>ബൂത്ത്: <b>{html.escape(booth)}</b></p>
      <p>ഇന്നത്തെ എൻട്രികൾ: <b id="today-count">{count_text}</b></p>
      <form method="POST">
        {_input('householdName')}
        {_input('phoneNumber', 'tel', 'inputmode=numeric')}
        {_input('boothNumberField', 'text', 'inputmode=numeric')}
        {_input('areaRegion')}
        <label for="issues">{hh.FORM_LABELS['issues']}</label>
        <textarea id="issues" name="issues" rows="5" maxlength="{hh.MAX_LENGTHS['issues']}">{html.escape(form_values['issues'])}</textarea>
        <button type="submit">സമർപ്പിക്കുക</button>
      </form>
    </div>
    """
    return ui_shell("Household Data Collection", page)


def _admin_filters():
    agent = (request.args.get("agent_booth") or hh.FILTER_ALL).strip() or hh.FILTER_ALL
    household = (request.args.get("household_booth") or hh.FILTER_ALL).strip() or hh.FILTER_ALL
    return agent, household


def _load_filtered():
    res = hh.list_households(g.user)
    if not res.ok:
        raise BackendError(res.error)
    agent, household = _admin_filters()
    return res.value, hh.filter_records(res.value, agent, household), agent, household


@app.route("/admin")
def ui_admin():
    gate = admin_gate()
    if gate:
        return gate
    try:
        all_records, records, agent, household = _load_filtered()
    except BackendError as e:
        return _backend_failure_page(str(e))

    agent_opts, household_opts = hh.booth_options(all_records)

    def _options(values, selected):
        opts = [f"<option value='all' {'selected' if selected == hh.FILTER_ALL else ''}>All</option>"]
        for v in values:
            opts.append(f"<option value='{html.escape(v)}' {'selected' if v == selected else ''}>{html.escape(v)}</option>")
        return "".join(opts)

    csv_url = html.escape(url_for("ui_admin_export_csv", agent_booth=agent, household_booth=household))
    json_url = html.escape(url_for("ui_admin_export_json", agent_booth=agent, household_booth=household))
    disabled = " disabled" if not records else ""
    page = f"""
    <div class="card">
      <h2>Admin Report</h2>
      <form method="GET" class="filters">
        <div>
          <label for="agent_booth">Agent Booth Number</label>
          <select id="agent_booth" name="agent_booth" onchange="this.form.submit()">{_options(agent_opts, agent)}</select>
        </div>
        <div>
          <label for="household_booth">Household Booth Number</label>
          <select id="household_booth" name="household_booth" onchange="this.form.submit()">{_options(household_opts, household)}</select>
        </div>
      </form>
      <p>Total Submissions: <b id="submission-count">{len(records)}</b></p>
      <a class="button{disabled}" href="{csv_url}">Export to Excel</a>
      <a class="button{disabled}" href="{json_url}">Export JSON</a>
    </div>
    """
    return ui_shell("Admin Dashboard", page)


def _export_filename(ext: str) -> str:
    return secure_filename(f"household_data_admin_{datetime.now().strftime('%Y%m%d_%H%M%S')}.{ext}")


def download(text: str, filename: str, mimetype: str = "text/csv; charset=utf-8"):
    # Sent from memory; nothing is written to disk.
    return send_file(
        io.BytesIO(text.encode("utf-8")),
        mimetype=mimetype,
        as_attachment=True,
        download_name=filename,
    )


@app.route("/admin/export.csv")
def ui_admin_export_csv():
    gate = admin_gate()
    if gate:
        return gate
    try:
        _, records, agent, household = _load_filtered()
    except BackendError as e:
        return _backend_failure_page(str(e))
    if not records:
        flash("No records to export.", "error")
        return redirect(url_for("ui_admin", agent_booth=agent, household_booth=household))
    text = exp.format_households_csv(records)
    logger.info("CSV export of %d households by %s", len(records), g.user.uid)
    return download(text, _export_filename("csv"))


@app.route("/admin/export.json")
def ui_admin_export_json():
    gate = admin_gate()
    if gate:
        return gate
    try:
        _, records, agent, household = _load_filtered()
    except BackendError as e:
        return _backend_failure_page(str(e))
    if not records:
        flash("No records to export.", "error")
        return redirect(url_for("ui_admin", agent_booth=agent, household_booth=household))
    return download(exp.households_json(records), _export_filename("json"), mimetype="application/json")


# ---------------------------
# API
# ---------------------------

@app.route("/api/v1/households", methods=["GET"])
def api_v1_households():
    gate = admin_gate()
    if gate:
        return gate
    try:
        _, records, _, _ = _load_filtered()
    except BackendError as e:
        return jsonify({"error": str(e)}), 502
    return jsonify([r.to_dict() for r in records])


@app.route("/api/v1/summary", methods=["GET"])
def api_v1_summary():
    gate = admin_gate()
    if gate:
        return gate
    try:
        _, records, _, _ = _load_filtered()
    except BackendError as e:
        return jsonify({"error": str(e)}), 502
    return jsonify(exp.summary(records))


@app.route("/healthz")
def healthz():
    return jsonify({"ok": True, "app": APP_NAME, "version": APP_VERSION, "backend": config.BACKEND, "time": now_iso()})


# ---------------------------
# Boot
# ---------------------------
if __name__ == "__main__":
    if config.BACKEND == "local":
        init_db()
    app.run(host=config.HOST, port=config.PORT, debug=config.DEBUG)

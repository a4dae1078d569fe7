"""VulnLab: jobs-board target for WebProbe runs.

A small candidate / recruiter / company-admin / super-admin API with a few
HTML pages. Every weakness the probes look for sits behind a switch in
``LabSettings`` so the same app can play a hardened or a broken target.
State is in memory and reset per ``create_app()``.
"""

import os
import threading
import time
from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Dict, Optional

import jwt
from flask import (
    Flask, request, render_template_string, redirect,
    make_response, g, jsonify,
)

SECURITY_HEADERS = {
    "X-Frame-Options": "DENY",
    "Content-Security-Policy": "default-src 'self'",
    "X-Content-Type-Options": "nosniff",
}


@dataclass
class LabSettings:
    jwt_secret: str = "vulnlab-signing-secret-0123456789abcdef"
    token_ttl_s: int = 3600
    token_shape: str = "top_level"      # top_level | data | payload | cookie
    verify_signatures: bool = True
    invalidate_on_logout: bool = True
    enforce_ownership: bool = True
    enforce_roles: bool = True
    validate_uploads: bool = True
    max_upload_bytes: int = 5 * 1024 * 1024
    rate_limit: int = 0                 # requests per bucket and window; 0 disables
    rate_window_s: int = 60
    security_headers: bool = True
    leak_secrets: bool = False

    @classmethod
    def vulnerable(cls, **overrides) -> "LabSettings":
        """Every switch flipped to its weak side."""
        values = dict(verify_signatures=False, invalidate_on_logout=False,
                      enforce_ownership=False, enforce_roles=False, validate_uploads=False,
                      rate_limit=0, security_headers=False, leak_secrets=True)
        values.update(overrides)
        return cls(**values)


# ── Seed data ───────────────────────────────────────────────────

LAB_USERS = {
    "candidate":    ("candidate@vulnlab.test", "Candidate#123"),
    "candidateB":   ("candidate.b@vulnlab.test", "Candidate#456"),
    "recruiter":    ("recruiter@vulnlab.test", "Recruiter#123"),
    "companyAdmin": ("admin@vulnlab.test", "Admin#123"),
    "superAdmin":   ("root@vulnlab.test", "Root#123"),
}


@dataclass
class LabState:
    users: Dict[int, Dict[str, Any]] = field(default_factory=dict)
    companies: Dict[int, Dict[str, Any]] = field(default_factory=dict)
    jobs: Dict[int, Dict[str, Any]] = field(default_factory=dict)
    applications: Dict[int, Dict[str, Any]] = field(default_factory=dict)
    cvs: Dict[int, Dict[str, Any]] = field(default_factory=dict)
    revoked: set = field(default_factory=set)
    hits: Dict[str, list] = field(default_factory=dict)
    next_id: int = 100
    lock: threading.Lock = field(default_factory=threading.Lock)

    def new_id(self) -> int:
        self.next_id += 1
        return self.next_id


def seed_state() -> LabState:
    s = LabState()
    s.companies = {1: {"id": 1, "name": "Acme"}, 2: {"id": 2, "name": "Globex"}}
    rows = [
        (1, "candidate", None, "Candidate A", *LAB_USERS["candidate"]),
        (2, "candidate", None, "Candidate B", *LAB_USERS["candidateB"]),
        (3, "recruiter", 1, "Rita Recruiter", *LAB_USERS["recruiter"]),
        (4, "companyAdmin", 1, "Carl Admin", *LAB_USERS["companyAdmin"]),
        (5, "superAdmin", None, "Root", *LAB_USERS["superAdmin"]),
        (6, "recruiter", 2, "Globex Recruiter", "recruiter@globex.test", "Globex#123"),
    ]
    for uid, role, company, name, email, password in rows:
        s.users[uid] = {"id": uid, "role": role, "companyId": company, "fullName": name,
                        "email": email, "password": password, "active": True}
    s.jobs = {
        1: {"id": 1, "companyId": 1, "title": "Backend Engineer"},
        2: {"id": 2, "companyId": 2, "title": "Data Analyst"},
    }
    s.applications = {
        1: {"id": 1, "candidateId": 1, "jobId": 1, "companyId": 1, "status": "submitted",
            "coverLetter": "seed"},
        2: {"id": 2, "candidateId": 2, "jobId": 2, "companyId": 2, "status": "submitted",
            "coverLetter": "seed"},
    }
    s.cvs = {2: {"fileName": "b-cv.pdf", "bytes": 1024}}
    return s


# ── Shared HTML layout ──────────────────────────────────────────

_LAYOUT = """<!DOCTYPE html>
<html><head><title>VulnLab - {{ title }}</title>
<style>
body{font-family:sans-serif;max-width:900px;margin:0 auto;padding:2rem}
form{padding:1rem;border:1px solid #ccc;margin:1rem 0}
[role=alert]{color:#b00}
</style></head>
<body>
<h2>{{ title }}</h2>
{% if error %}<p role="alert">{{ error }}</p>{% endif %}
{{ content|safe }}
</body></html>
"""


def page(title, content, error=""):
    return render_template_string(_LAYOUT, title=title, content=content, error=error)


def public_user(user: Dict[str, Any], leak: bool) -> Dict[str, Any]:
    out = {k: v for k, v in user.items() if k != "password"}
    if leak:
        out["password"] = user["password"]
    return out


def create_app(settings: Optional[LabSettings] = None) -> Flask:
    settings = settings or LabSettings()
    app = Flask(__name__)
    app.config["LAB_SETTINGS"] = settings
    state = seed_state()
    app.config["LAB_STATE"] = state

    # ══════════════════════════════════════════════════════════════
    #  Helpers
    # ══════════════════════════════════════════════════════════════

    def issue_token(user: Dict[str, Any]) -> str:
        now = int(time.time())
        claims = {"sub": str(user["id"]), "role": user["role"], "iat": now,
                  "exp": now + settings.token_ttl_s}
        return jwt.encode(claims, settings.jwt_secret, algorithm="HS256")

    def decode(token: str) -> Optional[Dict[str, Any]]:
        try:
            if settings.verify_signatures:
                return jwt.decode(token, settings.jwt_secret, algorithms=["HS256"])
            # VULNERABLE: signature, algorithm and expiry are all ignored
            return jwt.decode(token, options={"verify_signature": False})
        except jwt.PyJWTError:
            return None

    def bearer() -> str:
        header = request.headers.get("Authorization", "")
        if header.lower().startswith("bearer "):
            return header[7:].strip()
        return request.cookies.get("accessToken", "")

    def throttled(bucket: str) -> bool:
        if settings.rate_limit <= 0:
            return False
        key = f"{bucket}:{request.remote_addr}"
        now = time.monotonic()
        with state.lock:
            window = [t for t in state.hits.get(key, []) if now - t < settings.rate_window_s]
            window.append(now)
            state.hits[key] = window
            return len(window) > settings.rate_limit

    def error(status: int, message: str):
        return jsonify({"error": message}), status

    def auth_required(*roles):
        """Resolve the caller from the bearer token; `roles` gates by token role."""
        def deco(fn):
            @wraps(fn)
            def wrapper(*args, **kwargs):
                token = bearer()
                claims = decode(token) if token else None
                if claims is None:
                    return error(401, "unauthorized")
                if settings.invalidate_on_logout and token in state.revoked:
                    return error(401, "token revoked")
                try:
                    user = state.users.get(int(claims.get("sub", 0)))
                except (TypeError, ValueError):
                    user = None
                if user is None or not user["active"]:
                    return error(401, "unknown user")
                g.user = user
                g.role = claims.get("role", user["role"])
                g.token = token
                if roles and settings.enforce_roles and g.role not in roles:
                    return error(403, "forbidden")
                return fn(*args, **kwargs)
            return wrapper
        return deco

    def same_company(company_id) -> bool:
        return (not settings.enforce_ownership or g.role == "superAdmin"
                or g.user.get("companyId") == company_id)

    def can_read_application(app_row) -> bool:
        if not settings.enforce_ownership or g.role == "superAdmin":
            return True
        if g.role == "candidate":
            return app_row["candidateId"] == g.user["id"]
        return g.user.get("companyId") == app_row["companyId"]

    @app.after_request
    def add_headers(resp):
        if settings.security_headers:
            for name, value in SECURITY_HEADERS.items():
                resp.headers.setdefault(name, value)
        return resp

    # ══════════════════════════════════════════════════════════════
    #  Auth
    # ══════════════════════════════════════════════════════════════

    @app.route("/api/auth/login", methods=["POST"])
    def login():
        if throttled("login"):
            return error(429, "too many requests")
        data = request.get_json(silent=True) or {}
        user = next((u for u in state.users.values()
                     if u["email"] == data.get("email") and u["password"] == data.get("password")),
                    None)
        if user is None or not user["active"]:
            return error(401, "invalid credentials")
        token = issue_token(user)
        body: Dict[str, Any] = {"user": public_user(user, settings.leak_secrets)}
        if settings.token_shape == "top_level":
            body["token"] = token
        elif settings.token_shape == "data":
            body["data"] = {"accessToken": token}
        elif settings.token_shape == "payload":
            body["payload"] = {"token": token}
        resp = make_response(jsonify(body))
        if settings.token_shape == "cookie":
            resp.set_cookie("accessToken", token, httponly=True)
        return resp

    @app.route("/api/auth/register", methods=["POST"])
    def register():
        data = request.get_json(silent=True) or {}
        email = (data.get("email") or "").strip()
        role = data.get("role") or "candidate"
        if "@" not in email or not data.get("password"):
            return error(400, "email and password required")
        if settings.enforce_roles and role == "superAdmin":
            return error(403, "role not allowed")
        with state.lock:
            if any(u["email"] == email for u in state.users.values()):
                return error(409, "email taken")
            uid = state.new_id()
            company = 1 if role in ("recruiter", "companyAdmin") else None
            state.users[uid] = {"id": uid, "role": role, "companyId": company,
                                "fullName": data.get("fullName", ""), "email": email,
                                "password": data["password"], "active": True}
        return jsonify({"id": uid}), 201

    @app.route("/api/auth/logout", methods=["POST"])
    @auth_required()
    def logout():
        with state.lock:
            state.revoked.add(g.token)
        return jsonify({"ok": True})

    @app.route("/api/users/me", methods=["GET", "PATCH"])
    @auth_required()
    def me():
        if request.method == "PATCH":
            data = request.get_json(silent=True) or {}
            if settings.enforce_roles and "role" in data and data["role"] != g.user["role"]:
                return error(403, "role change not allowed")
            for key in ("fullName", "role"):
                if key in data:
                    g.user[key] = data[key]
        return jsonify(public_user(g.user, settings.leak_secrets))

    # ══════════════════════════════════════════════════════════════
    #  Applications
    # ══════════════════════════════════════════════════════════════

    @app.route("/api/applications", methods=["POST"])
    @auth_required("candidate")
    def create_application():
        if throttled(f"applications:{g.user['id']}"):
            return error(429, "too many requests")
        data = request.get_json(silent=True) or {}
        try:
            job = state.jobs.get(int(data.get("jobId", 0)))
        except (TypeError, ValueError):
            job = None
        if job is None:
            return error(404, "job not found")
        with state.lock:
            aid = state.new_id()
            state.applications[aid] = {"id": aid, "candidateId": g.user["id"], "jobId": job["id"],
                                       "companyId": job["companyId"], "status": "submitted",
                                       "coverLetter": data.get("coverLetter", "")}
        return jsonify({"data": {"id": aid}}), 201

    @app.route("/api/applications/<int:app_id>", methods=["GET", "DELETE"])
    @auth_required()
    def application(app_id):
        row = state.applications.get(app_id)
        if row is None:
            return error(404, "not found")
        if request.method == "DELETE":
            owner = row["candidateId"] == g.user["id"] or g.role == "superAdmin"
            if settings.enforce_ownership and not owner:
                return error(403, "forbidden")
            with state.lock:
                state.applications.pop(app_id, None)
            return "", 204
        if not can_read_application(row):
            return error(403, "forbidden")
        return jsonify(row)

    @app.route("/api/applications/<int:app_id>/status", methods=["POST", "PATCH"])
    @auth_required("recruiter", "companyAdmin")
    def application_status(app_id):
        if throttled(f"status:{g.user['id']}"):
            return error(429, "too many requests")
        row = state.applications.get(app_id)
        if row is None:
            return error(404, "not found")
        if g.role in ("recruiter", "companyAdmin") and not same_company(row["companyId"]):
            return error(403, "forbidden")
        data = request.get_json(silent=True) or {}
        row["status"] = data.get("status", row["status"])
        return jsonify(row)

    # ══════════════════════════════════════════════════════════════
    #  CV upload
    # ══════════════════════════════════════════════════════════════

    @app.route("/api/cv/upload", methods=["POST"])
    @auth_required("candidate")
    def cv_upload():
        if throttled(f"upload:{g.user['id']}"):
            return error(429, "too many requests")
        upload = request.files.get("cv")
        if upload is None:
            return error(400, "cv file required")
        content = upload.read()
        name = upload.filename or ""
        if settings.validate_uploads:
            if not content:
                return error(422, "empty file")
            if len(content) > settings.max_upload_bytes:
                return error(413, "file too large")
            if ("\x00" in name or "/" in name or "\\" in name or ".." in name
                    or name.count(".") != 1 or not name.lower().endswith(".pdf")):
                return error(400, "invalid file name")
            if upload.mimetype != "application/pdf" or not content.startswith(b"%PDF"):
                return error(415, "only PDF files are accepted")
        with state.lock:
            state.cvs[g.user["id"]] = {"fileName": os.path.basename(name), "bytes": len(content)}
        return jsonify({"ok": True, "fileName": name}), 201

    @app.route("/api/candidates/<int:candidate_id>/cv")
    @auth_required()
    def candidate_cv(candidate_id):
        if settings.enforce_ownership and g.role == "candidate" and g.user["id"] != candidate_id:
            return error(403, "forbidden")
        cv = state.cvs.get(candidate_id)
        if cv is None:
            return error(404, "no cv")
        return jsonify(cv)

    # ══════════════════════════════════════════════════════════════
    #  Jobs, companies, platform
    # ══════════════════════════════════════════════════════════════

    @app.route("/api/jobs", methods=["POST"])
    @auth_required("companyAdmin")
    def create_job():
        data = request.get_json(silent=True) or {}
        with state.lock:
            jid = state.new_id()
            state.jobs[jid] = {"id": jid, "companyId": g.user.get("companyId"),
                               "title": data.get("title", "Untitled")}
        return jsonify(state.jobs[jid]), 201

    @app.route("/api/jobs/<int:job_id>", methods=["PUT"])
    @auth_required("companyAdmin")
    def update_job(job_id):
        job = state.jobs.get(job_id)
        if job is None:
            return error(404, "not found")
        if not same_company(job["companyId"]):
            return error(403, "forbidden")
        data = request.get_json(silent=True) or {}
        job["title"] = data.get("title", job["title"])
        return jsonify(job)

    @app.route("/api/companies/<int:company_id>/candidates")
    @auth_required("recruiter", "companyAdmin", "superAdmin")
    def company_candidates(company_id):
        if not same_company(company_id):
            return error(403, "forbidden")
        ids = {a["candidateId"] for a in state.applications.values()
               if a["companyId"] == company_id}
        return jsonify([public_user(state.users[i], settings.leak_secrets)
                        for i in sorted(ids) if i in state.users])

    @app.route("/api/platform/companies")
    @auth_required("superAdmin")
    def platform_companies():
        return jsonify(list(state.companies.values()))

    # ══════════════════════════════════════════════════════════════
    #  Pages
    # ══════════════════════════════════════════════════════════════

    def page_user() -> Optional[Dict[str, Any]]:
        token = request.cookies.get("accessToken", "")
        claims = decode(token) if token else None
        if claims is None or (settings.invalidate_on_logout and token in state.revoked):
            return None
        try:
            return state.users.get(int(claims.get("sub", 0)))
        except (TypeError, ValueError):
            return None

    def guarded(*roles):
        def deco(fn):
            @wraps(fn)
            def wrapper(*args, **kwargs):
                user = page_user()
                if user is None:
                    return redirect("/login")
                if roles and user["role"] not in roles:
                    return redirect("/403")
                g.user = user
                return fn(*args, **kwargs)
            return wrapper
        return deco

    @app.route("/login", methods=["GET", "POST"])
    def login_page():
        err = ""
        if request.method == "POST":
            user = next((u for u in state.users.values()
                         if u["email"] == request.form.get("email")
                         and u["password"] == request.form.get("password")), None)
            if user is not None:
                resp = redirect("/dashboard")
                resp.set_cookie("accessToken", issue_token(user), httponly=True)
                return resp
            err = "Invalid email or password"
        return page("Login", """
        <form method="POST" action="/login">
            <label for="email">Email</label> <input id="email" name="email" type="email">
            <label for="password">Password</label> <input id="password" name="password" type="password">
            <button type="submit">Login</button>
        </form>
        """, err)

    @app.route("/register", methods=["GET", "POST"])
    def register_page():
        err = ""
        if request.method == "POST":
            name = request.form.get("fullName", "").strip()
            email = request.form.get("email", "").strip()
            if not name or len(name) > 120 or "<" in name:
                err = "Please enter a valid name"
            elif email.count("@") != 1 or "." not in email.split("@")[-1]:
                err = "Please enter a valid email"
            elif len(request.form.get("password", "")) < 8:
                err = "Password must be at least 8 characters"
            else:
                return redirect("/login")
        return page("Register", """
        <form method="POST" action="/register">
            <label for="fullName">Full Name</label> <input id="fullName" name="fullName">
            <label for="email">Email</label> <input id="email" name="email">
            <label for="password">Password</label> <input id="password" name="password" type="password">
            <input type="hidden" name="csrf" value="static">
            <button type="submit">Register</button>
        </form>
        """, err)

    @app.route("/dashboard")
    @guarded()
    def dashboard():
        return page("Dashboard", f"""
        <div data-testid="dashboard">Welcome {g.user['fullName']}</div>
        <form method="POST" action="/logout"><button type="submit">Logout</button></form>
        """)

    @app.route("/logout", methods=["POST"])
    def logout_page():
        token = request.cookies.get("accessToken", "")
        if token:
            with state.lock:
                state.revoked.add(token)
        resp = redirect("/login")
        resp.delete_cookie("accessToken")
        return resp

    @app.route("/candidate/profile", methods=["GET", "POST"])
    @guarded("candidate")
    def candidate_profile():
        err = ""
        if request.method == "POST":
            upload = request.files.get("cv")
            content = upload.read() if upload else b""
            if not content.startswith(b"%PDF") or len(content) > settings.max_upload_bytes:
                err = "Please upload a valid PDF under the size limit"
        return page("Profile", """
        <form method="POST" action="/candidate/profile" enctype="multipart/form-data">
            <input type="file" name="cv">
            <button type="submit">Save CV</button>
        </form>
        """, err)

    @app.route("/recruiter/dashboard")
    @guarded("recruiter")
    def recruiter_dashboard():
        return page("Recruiter", "<p>Recruiter tools</p>")

    @app.route("/admin/dashboard")
    @guarded("companyAdmin")
    def admin_dashboard():
        return page("Company admin", "<p>Company settings</p>")

    @app.route("/superadmin/dashboard")
    @guarded("superAdmin")
    def superadmin_dashboard():
        return page("Platform", "<p>Platform administration</p>")

    @app.route("/403")
    def forbidden_page():
        return page("Forbidden", "<p>You do not have access to this page.</p>"), 403

    return app


# ══════════════════════════════════════════════════════════════════
#  Main
# ══════════════════════════════════════════════════════════════════

if __name__ == "__main__":
    weak = os.environ.get("VULNLAB_MODE", "hardened") == "vulnerable"
    lab = create_app(LabSettings.vulnerable() if weak else LabSettings())
    print(f"\n  VulnLab ({'vulnerable' if weak else 'hardened'}) on http://0.0.0.0:5000\n")
    lab.run(host="0.0.0.0", port=5000, debug=False, threaded=True)

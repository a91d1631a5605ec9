from flask_talisman import Talisman

def init_security(app):
    """
    Production/staging security headers. The API serves JSON plus the
    unsubscribe confirmation page, so the CSP allows no scripts at all.
    """
    csp = {
        "default-src": ["'none'"],
        "style-src":   ["'self'", "'unsafe-inline'"],  # unsubscribe page uses inline styles
        "img-src":     ["'self'", "data:"],
        "frame-ancestors": ["'none'"],
        "base-uri":    ["'none'"],
        "form-action": ["'none'"],
    }

    Talisman(
        app,
        content_security_policy=csp,
        force_https=True,
        strict_transport_security=True,
        session_cookie_secure=True,
        frame_options="DENY",
        referrer_policy="no-referrer",
    )

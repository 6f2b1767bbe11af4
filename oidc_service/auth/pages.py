"""
HTML pages served by the authentication routes.
"""

from html import escape

from fastapi.responses import HTMLResponse


def render_logged_out_page(prefix: str = "") -> HTMLResponse:
    """
    Render the logged-out confirmation page.

    Args:
        prefix: Tenant/channel path prefix (``/tenant/b2c``) or empty string

    Returns:
        HTMLResponse with a link back to the matching login route
    """
    login_url = escape(f"{prefix}/login", quote=True)

    html_content = f"""
    <!DOCTYPE html>
    <html lang="en">
    <head>
        <meta charset="UTF-8">
        <meta name="viewport" content="width=device-width, initial-scale=1.0">
        <title>Logged Out</title>
        <style>
            * {{ margin: 0; padding: 0; box-sizing: border-box; }}
            body {{
                font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Helvetica, Arial, sans-serif;
                background: #f3f4f6;
                min-height: 100vh;
                display: flex;
                align-items: center;
                justify-content: center;
                padding: 20px;
            }}
            .container {{
                background: white;
                border-radius: 12px;
                padding: 40px;
                max-width: 500px;
                width: 100%;
                box-shadow: 0 10px 40px rgba(0,0,0,0.1);
                text-align: center;
            }}
            h1 {{
                color: #1f2937;
                font-size: 24px;
                margin-bottom: 16px;
            }}
            .message {{
                color: #6b7280;
                font-size: 16px;
                line-height: 1.6;
                margin-bottom: 32px;
            }}
            .button {{
                display: inline-block;
                background: #4f46e5;
                color: white;
                padding: 14px 32px;
                border-radius: 8px;
                text-decoration: none;
                font-weight: 600;
                font-size: 16px;
            }}
        </style>
    </head>
    <body>
        <div class="container">
            <h1>You have been logged out</h1>
            <p class="message">Your session has ended. You can safely close this window.</p>
            <a href="{login_url}" class="button">Log in again</a>
        </div>
    </body>
    </html>
    """

    return HTMLResponse(content=html_content, status_code=200)

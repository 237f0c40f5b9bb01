import json

import requests


CODE = "ABCDE-FGHIJ-KLMNO-PQRST-UVWXY"
OTHER_CODE = "ZZZZZ-YYYYY-XXXXX-WWWWW-VVVVV"

LOGIN_PAGE = """
<html>
<head><meta name="csrf-token" content="csrf-abc"></head>
<body>
  <form action="/sessions" method="post">
    <input type="hidden" name="authenticity_token" value="form-token-123">
    <input name="user[email]"><input name="user[password]" type="password">
  </form>
</body>
</html>
"""


def redemption_form_html(code, service, title="oak2", check="chk", token="tok"):
    return f"""
<form class="new_archway_code_redemption" action="/code_redemptions" method="post">
  <input type="hidden" name="authenticity_token" value="{token}-{service}">
  <input type="hidden" name="archway_code_redemption[code]" value="{code}">
  <input type="hidden" name="archway_code_redemption[check]" value="{check}-{service}">
  <input type="hidden" name="archway_code_redemption[service]" value="{service}">
  <input type="hidden" name="archway_code_redemption[title]" value="{title}">
  <input type="submit" name="commit" value="Redeem for {service}">
</form>
"""


def check_page(code, *services):
    forms = "".join(redemption_form_html(code, service) for service in services)
    return f"<html><body><h2>Borderlands 4</h2>{forms}</body></html>"


def make_response(status=200, text="", headers=None, json_data=None, url="https://shift.example.test/"):
    resp = requests.Response()
    resp.status_code = status
    if json_data is not None:
        text = json.dumps(json_data)
    resp._content = text.encode("utf-8")
    resp.encoding = "utf-8"
    resp.headers.update(headers or {})
    resp.url = url
    return resp


class FakeClock:
    """Monotonic clock that only moves when the fake sleep is called"""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds



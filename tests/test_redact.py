from patchbay.redact import REDACTED, redact


def test_plain_key_values_are_redacted():
    assert redact("api_key=abc123&page=2") == "api_key=REDACTED&page=2"
    assert redact("PASSWORD:hunter2 next") == "PASSWORD:REDACTED next"
    assert redact("export TOKEN=ghp_xyz\n") == "export TOKEN=REDACTED\n"
    assert redact("Bearer:eyJhbGci.payload.sig") == "Bearer:REDACTED"


def test_key_name_is_preserved_inside_longer_identifiers():
    assert redact("access_token=zzz") == "access_token=REDACTED"


def test_quoted_json_members_are_redacted():
    text = '{"apiKey": "sk-live-123", "name": "demo"}'
    assert redact(text) == '{"apiKey": "REDACTED", "name": "demo"}'


def test_ordinary_code_is_untouched():
    code = (
        "def add(a, b):\n"
        "    # environment-independent\n"
        "    return a + b\n"
        "tokens = lexer.run(source)\n"
    )
    assert redact(code) == code


def test_redact_is_idempotent():
    samples = [
        "api_key=abc&secret=def",
        '{"token": "t0k3n"} password:pw',
        "jwt=aaa.bbb.ccc env=prod",
        "nothing to see here",
        "",
        f"token={REDACTED}",
    ]
    for sample in samples:
        once = redact(sample)
        assert redact(once) == once


def test_non_string_input_passes_through():
    assert redact(None) is None
    assert redact("") == ""

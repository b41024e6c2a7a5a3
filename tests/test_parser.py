import random

from patchbay.parser import ChangeInstruction, parse, parse_report

FENCE = "```"

SAMPLE = f"""Here's what I suggest:

--- FILE: src/utils.ts ---
action: replace
lines: 10-15
{FENCE}ts
function f(){{return 1;}}
{FENCE}

Some commentary between the blocks.

--- FILE: src/index.ts ---
action: append
{FENCE}typescript
// Additional exports
export * from './utils';
{FENCE}
"""


def test_parses_two_entries_in_order():
    changes = parse(SAMPLE)

    assert len(changes) == 2
    first, second = changes
    assert first == ChangeInstruction(
        file_path="src/utils.ts",
        action="replace",
        line_start=10,
        line_end=15,
        code="function f(){return 1;}\n",
    )
    assert second.file_path == "src/index.ts"
    assert second.action == "append"
    assert second.line_start is None and second.line_end is None
    assert second.code == "// Additional exports\nexport * from './utils';\n"


def test_round_trip_of_generated_groups():
    rng = random.Random(7)
    expected = []
    doc = ["Intro prose.\n"]
    for i in range(25):
        action = rng.choice(["replace", "append", "prepend", "insert", None])
        start = rng.choice([None, rng.randint(1, 50)])
        end = None if start is None else start + rng.randint(0, 5)
        code = f"    value_{i} = {i}\n\n    return value_{i}\n"

        doc.append(f"--- FILE: pkg/mod_{i}.py ---\n")
        if action:
            doc.append(f"action: {action.upper() if i % 2 else action}\n")
        if start is not None:
            doc.append(f"lines: {start}-{end}\n")
        doc.append(f"{FENCE}python\n{code}{FENCE}\n\nNotes for entry {i}.\n")
        expected.append(ChangeInstruction(
            file_path=f"pkg/mod_{i}.py",
            action=action or "replace",
            line_start=start,
            line_end=end,
            code=code,
        ))

    assert parse("".join(doc)) == expected


def test_action_defaults_to_replace_and_is_lowercased():
    doc = f"--- FILE: a.py ---\n{FENCE}\nx\n{FENCE}\n--- FILE: b.py ---\nAction: PREPEND\n{FENCE}\ny\n{FENCE}\n"
    changes = parse(doc)
    assert [c.action for c in changes] == ["replace", "prepend"]


def test_single_line_number_sets_both_bounds():
    doc = f"--- FILE: a.py ---\nLines: 7\n{FENCE}\nx\n{FENCE}\n"
    change = parse(doc)[0]
    assert (change.line_start, change.line_end) == (7, 7)


def test_path_may_contain_spaces():
    doc = f"--- FILE:  docs/read me.md  ---\n{FENCE}md\n# Title\n{FENCE}\n"
    assert parse(doc)[0].file_path == "docs/read me.md"


def test_non_metadata_lines_before_fence_are_ignored():
    doc = f"--- FILE: a.py ---\nThis replaces the helper.\naction: insert\nlines: 3\n\n{FENCE}py\npass\n{FENCE}\n"
    change = parse(doc)[0]
    assert change.action == "insert"
    assert change.line_start == 3
    assert change.code == "pass\n"


def test_code_body_is_verbatim():
    body = "def f():\n\n    if x:\n\t\treturn '--- FILE: nope ---'\n  \n"
    doc = f"--- FILE: a.py ---\n{FENCE}python\n{body}{FENCE}\n"
    assert parse(doc)[0].code == body


def test_longer_fence_can_hold_inner_fences():
    body = f"Example:\n{FENCE}sh\nls\n{FENCE}\n"
    doc = f"--- FILE: README.md ---\n````markdown\n{body}````\n"
    assert parse(doc)[0].code == body


def test_duplicate_paths_are_kept_in_order():
    doc = (
        f"--- FILE: a.py ---\naction: append\n{FENCE}\none\n{FENCE}\n"
        f"--- FILE: a.py ---\naction: append\n{FENCE}\ntwo\n{FENCE}\n"
    )
    assert [c.code for c in parse(doc)] == ["one\n", "two\n"]


def test_no_headers_yields_nothing():
    assert parse("Just an explanation.\n```py\nprint(1)\n```\n") == []
    assert parse("") == []


def test_header_without_block_is_dropped():
    doc = f"--- FILE: lonely.py ---\naction: append\n--- FILE: b.py ---\n{FENCE}\nb\n{FENCE}\n"
    report = parse_report(doc)
    assert [c.file_path for c in report.instructions] == ["b.py"]
    assert report.skipped == ["no code block for lonely.py"]


def test_unterminated_fence_stops_before_incomplete_entry():
    doc = f"--- FILE: a.py ---\n{FENCE}\na\n{FENCE}\n--- FILE: b.py ---\n{FENCE}typescript\nfunction incomplete(\n"
    report = parse_report(doc)
    assert [c.file_path for c in report.instructions] == ["a.py"]
    assert report.incomplete is True


def test_trailing_header_without_fence_is_incomplete():
    report = parse_report(f"--- FILE: a.py ---\n{FENCE}\na\n{FENCE}\n--- FILE: b.py ---\n")
    assert len(report.instructions) == 1
    assert report.incomplete is True


def test_malformed_metadata_skips_entry():
    doc = (
        f"--- FILE: a.py ---\naction: delete\n{FENCE}\nx\n{FENCE}\n"
        f"--- FILE: b.py ---\nlines: 9-3\n{FENCE}\ny\n{FENCE}\n"
        f"--- FILE: c.py ---\n{FENCE}\nz\n{FENCE}\n"
    )
    report = parse_report(doc)
    assert [c.file_path for c in report.instructions] == ["c.py"]
    assert len(report.skipped) == 2
    assert report.incomplete is False


def test_empty_path_header_is_ignored():
    assert parse(f"--- FILE:  ---\n{FENCE}\nx\n{FENCE}\n") == []


def test_crlf_input():
    doc = f"--- FILE: a.py ---\r\naction: append\r\n{FENCE}py\r\nx = 1\r\n{FENCE}\r\n"
    change = parse(doc)[0]
    assert change.action == "append"
    assert change.code == "x = 1\r\n"


def test_partial_stream_prefixes_never_raise():
    for cut in range(len(SAMPLE) + 1):
        changes = parse(SAMPLE[:cut])
        assert len(changes) <= 2


def test_random_garbage_never_raises():
    rng = random.Random(99)
    alphabet = ["-", "`", "\n", " ", "FILE:", "---", "action:", "lines:", "1", "-2", "a", "/"]
    for _ in range(300):
        doc = "".join(rng.choice(alphabet) for _ in range(rng.randint(0, 80)))
        assert isinstance(parse(doc), list)


def test_non_string_input():
    assert parse(None) == []

"""Tests for the crontab text format."""

from cronkeeper.crontab.entries import (
    CrontabEntry,
    CrontabFormat,
    content_hash,
    generate_crontab_id,
)

FMT = CrontabFormat()


# -- Parsing -------------------------------------------------------------------


def test_parse_managed_entry() -> None:
    content = (
        "# CRONKEEPER_ID:abc123\n"
        "# CRONKEEPER_COMMENT:nightly backup\n"
        "0 2 * * * tar -czf /tmp/b.tgz /home\n"
    )
    [entry] = FMT.parse(content)

    assert entry == CrontabEntry(
        id="abc123",
        schedule="0 2 * * *",
        command="tar -czf /tmp/b.tgz /home",
        comment="nightly backup",
    )
    assert entry.is_managed


def test_parse_foreign_entry() -> None:
    [entry] = FMT.parse("*/5 * * * * /usr/local/bin/check.sh\n")

    assert entry.id is None
    assert entry.comment is None
    assert not entry.is_managed
    assert entry.command == "/usr/local/bin/check.sh"


def test_parse_collapses_schedule_whitespace() -> None:
    [entry] = FMT.parse("0   2 *\t* *    echo  hi  \n")

    assert entry.schedule == "0 2 * * *"
    assert entry.command == "echo  hi"


def test_markers_apply_only_to_next_data_line() -> None:
    content = (
        "# CRONKEEPER_ID:one\n"
        "0 1 * * * first\n"
        "0 2 * * * second\n"
    )
    first, second = FMT.parse(content)

    assert first.id == "one"
    assert second.id is None


def test_plain_comment_breaks_marker_block() -> None:
    content = "# CRONKEEPER_ID:lost\n# just a note\n0 1 * * * job\n"
    [entry] = FMT.parse(content)

    assert entry.id is None


def test_id_marker_resets_pending_comment() -> None:
    content = (
        "# CRONKEEPER_COMMENT:stale\n"
        "# CRONKEEPER_ID:fresh\n"
        "0 1 * * * job\n"
    )
    [entry] = FMT.parse(content)

    assert entry.id == "fresh"
    assert entry.comment is None


def test_invalid_lines_are_skipped() -> None:
    content = (
        "MAILTO=ops@example.com\n"
        "\n"
        "61 * * * * bad-minute\n"
        "* * * * *\n"
        "0 3 * * * good\n"
    )
    entries = FMT.parse(content)

    assert [e.command for e in entries] == ["good"]


def test_custom_markers() -> None:
    fmt = CrontabFormat(id_marker="# X-ID:", comment_marker="# X-NOTE:")
    [entry] = fmt.parse("# X-ID:42\n# X-NOTE:custom\n0 0 * * * job\n")

    assert entry.id == "42"
    assert entry.comment == "custom"
    assert FMT.parse("# X-ID:42\n0 0 * * * job\n")[0].id is None


# -- Rendering -----------------------------------------------------------------


def test_format_managed_entry() -> None:
    entry = CrontabEntry(id="abc", schedule="0 2 * * *", command="backup", comment="Nightly\nrun")

    assert FMT.format_entry(entry) == [
        "# CRONKEEPER_ID:abc",
        "# CRONKEEPER_COMMENT:Nightly run",
        "0 2 * * * backup",
    ]


def test_format_foreign_entry_has_no_markers() -> None:
    entry = CrontabEntry(id=None, schedule="0 2 * * *", command="backup", comment="ignored")

    assert FMT.format_entry(entry) == ["0 2 * * * backup"]


def test_render_empty() -> None:
    assert FMT.render([]) == ""


def test_render_is_newline_terminated_and_reparses() -> None:
    entries = [
        CrontabEntry(id="a", schedule="0 2 * * *", command="one", comment="First"),
        CrontabEntry(id=None, schedule="*/5 * * * *", command="two"),
    ]
    content = FMT.render(entries)

    assert content.endswith("\n")
    assert FMT.parse(content) == entries
    assert FMT.render(FMT.parse(content)) == content


# -- Helpers -------------------------------------------------------------------


def test_same_job_ignores_id_and_comment() -> None:
    a = CrontabEntry(id="x", schedule="0 1 * * *", command="job", comment="A")
    b = CrontabEntry(id=None, schedule="0 1 * * *", command="job")

    assert a.same_job(b)
    assert not a.same_job(CrontabEntry(id=None, schedule="0 2 * * *", command="job"))


def test_with_id() -> None:
    entry = CrontabEntry(id=None, schedule="0 1 * * *", command="job")

    assert entry.with_id("new").id == "new"
    assert entry.id is None


def test_generate_crontab_id_is_unique_hex() -> None:
    ids = {generate_crontab_id() for _ in range(50)}

    assert len(ids) == 50
    assert all(len(i) == 32 and int(i, 16) >= 0 for i in ids)


def test_content_hash_is_stable() -> None:
    assert content_hash("a\n") == content_hash("a\n")
    assert content_hash("a\n") != content_hash("a")

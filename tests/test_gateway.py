"""
Tests for the GitHub gateway against the in-memory fake.

Run with:
$ pytest -q
"""

import asyncio

import pytest

from projectpilot.core.errors import (
    AuthMissing,
    Conflict,
    DecodeFailure,
    NotFound,
    RepositoryError,
)
from projectpilot.github.gateway import (
    EntryKind,
    RemoteFile,
    sort_entries,
)

from conftest import (
    OWNER,
    REPO,
    TOKEN,
)


def test_list_entries_sorts_directories_first(github, gateway) -> None:
    """Entries b.txt, a/ and c.txt come back as a, b.txt, c.txt."""
    github.seed("b.txt", "b")
    github.seed("a/inner.txt", "inner")
    github.seed("c.txt", "c")

    entries = asyncio.run(gateway.list_entries(TOKEN, OWNER, REPO))

    assert [e.name for e in entries] == ["a", "b.txt", "c.txt"]
    assert entries[0].kind is EntryKind.DIRECTORY


def test_list_entries_on_file_returns_single_element_list(github, gateway) -> None:
    digest = github.seed("src/app.py", "print('hi')\n")

    entries = asyncio.run(gateway.list_entries(TOKEN, OWNER, REPO, "src/app.py"))

    assert isinstance(entries, list)
    assert len(entries) == 1
    assert entries[0].path == "src/app.py"
    assert entries[0].digest == digest


def test_list_entries_passes_branch_as_ref(github, gateway) -> None:
    github.seed("README.md", "hello")

    asyncio.run(gateway.list_entries(TOKEN, OWNER, REPO, "", branch="dev"))

    assert github.requests[-1].url.params["ref"] == "dev"


def test_sort_entries_is_lexicographic_within_kind() -> None:
    entries = [
        RemoteFile(name="z", path="z", digest="1", kind=EntryKind.DIRECTORY),
        RemoteFile(name="b.txt", path="b.txt", digest="2"),
        RemoteFile(name="a", path="a", digest="3", kind=EntryKind.DIRECTORY),
        RemoteFile(name="a.txt", path="a.txt", digest="4"),
    ]
    assert [e.name for e in sort_entries(entries)] == ["a", "z", "a.txt", "b.txt"]


def test_read_file_decodes_utf8(github, gateway) -> None:
    digest = github.seed("docs/notes.md", "Olá, mundo ✓\n")

    current = asyncio.run(gateway.read_file(TOKEN, OWNER, REPO, "docs/notes.md"))

    assert current.content == "Olá, mundo ✓\n"
    assert current.digest == digest


def test_read_binary_file_is_decode_failure(github, gateway) -> None:
    github.seed("logo.png", b"\x89PNG\r\n\x1a\n\xff\xfe")

    with pytest.raises(DecodeFailure):
        asyncio.run(gateway.read_file(TOKEN, OWNER, REPO, "logo.png"))


def test_read_directory_is_decode_failure(github, gateway) -> None:
    github.seed("src/app.py", "x")

    with pytest.raises(DecodeFailure):
        asyncio.run(gateway.read_file(TOKEN, OWNER, REPO, "src"))


def test_read_missing_file_is_not_found(gateway) -> None:
    with pytest.raises(NotFound):
        asyncio.run(gateway.read_file(TOKEN, OWNER, REPO, "missing.txt"))


def test_missing_credential_fails_before_any_request(github, gateway) -> None:
    with pytest.raises(AuthMissing):
        asyncio.run(gateway.list_entries(None, OWNER, REPO))
    assert github.requests == []


def test_rejected_credential_is_repository_error(gateway) -> None:
    with pytest.raises(RepositoryError) as info:
        asyncio.run(gateway.list_entries("wrong-token", OWNER, REPO))
    assert info.value.status_code == 401


def test_write_new_file_then_read_round_trips(gateway) -> None:
    result = asyncio.run(
        gateway.write_file(TOKEN, OWNER, REPO, "new.txt", "fresh ✓", "Add new.txt")
    )
    current = asyncio.run(gateway.read_file(TOKEN, OWNER, REPO, "new.txt"))

    assert current.content == "fresh ✓"
    assert current.digest == result.digest
    assert result.commit_sha


def test_write_omits_sha_when_creating(github, gateway) -> None:
    asyncio.run(gateway.write_file(TOKEN, OWNER, REPO, "new.txt", "x", "Add"))

    put = [r for r in github.requests if r.method == "PUT"][-1]
    assert b'"sha"' not in put.content


def test_write_with_stale_digest_is_conflict(github, gateway) -> None:
    stale = github.seed("README.md", "v1")
    github.seed("README.md", "v2")

    with pytest.raises(Conflict):
        asyncio.run(
            gateway.write_file(
                TOKEN, OWNER, REPO, "README.md", "v3", "Update", expected_digest=stale
            )
        )
    assert github.files["README.md"] == b"v2"


def test_create_only_write_on_existing_file_is_conflict(github, gateway) -> None:
    github.seed("README.md", "v1")

    with pytest.raises(Conflict):
        asyncio.run(gateway.write_file(TOKEN, OWNER, REPO, "README.md", "v2", "Overwrite"))
    assert github.files["README.md"] == b"v1"


def test_successful_write_advances_digest(github, gateway) -> None:
    first = github.seed("README.md", "same")

    result = asyncio.run(
        gateway.write_file(TOKEN, OWNER, REPO, "README.md", "same", "Touch", expected_digest=first)
    )

    assert result.digest != first


def test_list_branches(github, gateway) -> None:
    github.branches["dev"] = "abc1234"

    assert asyncio.run(gateway.list_branches(TOKEN, OWNER, REPO)) == ["main", "dev"]


def test_list_branches_falls_back_to_main(github, gateway) -> None:
    github.fail_branches = True

    assert asyncio.run(gateway.list_branches(TOKEN, OWNER, REPO)) == ["main"]


def test_list_commits_maps_summaries(gateway) -> None:
    asyncio.run(gateway.write_file(TOKEN, OWNER, REPO, "a.txt", "a", "First commit"))
    asyncio.run(gateway.write_file(TOKEN, OWNER, REPO, "b.txt", "b", "Second commit"))

    commits = asyncio.run(gateway.list_commits(TOKEN, OWNER, REPO, limit=1))

    assert len(commits) == 1
    assert commits[0].message == "Second commit"
    assert commits[0].author_name == "Test User"
    assert commits[0].permalink.endswith(commits[0].digest)


def test_get_readme_is_empty_when_missing(github, gateway) -> None:
    assert asyncio.run(gateway.get_readme(TOKEN, OWNER, REPO)) == ""
    github.seed("README.md", "# Webapp")
    assert asyncio.run(gateway.get_readme(TOKEN, OWNER, REPO)) == "# Webapp"


def test_create_branch_from_ref(github, gateway) -> None:
    base = asyncio.run(gateway.get_ref_sha(TOKEN, OWNER, REPO, "heads/main"))
    ref = asyncio.run(gateway.create_branch(TOKEN, OWNER, REPO, "feature/login", base))

    assert ref == "refs/heads/feature/login"
    assert github.branches["feature/login"] == base
    with pytest.raises(Conflict):
        asyncio.run(gateway.create_branch(TOKEN, OWNER, REPO, "feature/login", base))


def test_get_digest_skips_decoding(github, gateway) -> None:
    digest = github.seed("logo.png", b"\x89PNG\r\n\x1a\n\xff\xfe")
    github.seed("src/app.py", "x")

    assert asyncio.run(gateway.get_digest(TOKEN, OWNER, REPO, "logo.png")) == digest
    with pytest.raises(DecodeFailure):
        asyncio.run(gateway.get_digest(TOKEN, OWNER, REPO, "src"))
    with pytest.raises(NotFound):
        asyncio.run(gateway.get_digest(TOKEN, OWNER, REPO, "missing.txt"))


@pytest.mark.parametrize("limit, per_page", [(0, "1"), (-5, "1"), (500, "100"), (7, "7")])
def test_list_commits_clamps_page_size(github, gateway, limit, per_page) -> None:
    asyncio.run(gateway.list_commits(TOKEN, OWNER, REPO, limit=limit))

    assert github.requests[-1].url.params["per_page"] == per_page

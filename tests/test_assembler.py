from fakes import FakeBackend, FakeFileSystem
from rulepilot.agents.summarizer import SummarizerAgent
from rulepilot.context import SUMMARY_MARKER, TRUNCATION_MARKER, ContextAssembler
from rulepilot.models import Task


def _task(**fields):
    fields.setdefault("id", "t1")
    fields.setdefault("title", "Fix things")
    return Task(**fields)


def test_oversized_file_is_truncated_when_summarization_disabled():
    big = "x" * 5000
    fs = FakeFileSystem({"src/big.py": big})
    assembler = ContextAssembler(fs, max_chars_per_file=2000, enable_summarization=False)

    context = assembler.assemble(_task(description="Refactor src/big.py"))

    snippet = context["src/big.py"]
    assert TRUNCATION_MARKER in snippet
    assert big not in snippet
    assert snippet.startswith("x" * 2000)


def test_small_file_is_included_verbatim():
    fs = FakeFileSystem({"README.md": "# Hello"})
    assembler = ContextAssembler(fs)

    assert assembler.assemble(_task(title="Polish README.md")) == {"README.md": "# Hello"}


def test_nonexistent_candidates_are_dropped():
    fs = FakeFileSystem({"src/real.py": "pass"})
    assembler = ContextAssembler(fs)

    context = assembler.assemble(_task(description="Touch src/real.py and src/imaginary.py"))

    assert list(context) == ["src/real.py"]
    assert fs.reads == ["src/real.py"]


def test_max_files_caps_context_size():
    files = {f"pkg/m{i}.py": "pass" for i in range(8)}
    fs = FakeFileSystem(files)
    assembler = ContextAssembler(fs, max_files=3)

    context = assembler.assemble(_task(description=" ".join(files)))

    assert list(context) == ["pkg/m0.py", "pkg/m1.py", "pkg/m2.py"]


def test_unreadable_file_is_skipped_without_using_a_slot():
    fs = FakeFileSystem({"a.py": "A", "b.py": "B", "c.py": "C"}, unreadable={"a.py"})
    assembler = ContextAssembler(fs, max_files=2)

    context = assembler.assemble(_task(description="a.py b.py c.py"))

    assert context == {"b.py": "B", "c.py": "C"}


def test_rule_content_contributes_candidates():
    fs = FakeFileSystem({"docs/style.md": "Use tabs"})
    assembler = ContextAssembler(fs)

    context = assembler.assemble(_task(), rule_content="Follow docs/style.md everywhere")

    assert context == {"docs/style.md": "Use tabs"}


def test_oversized_file_is_summarized_when_enabled():
    backend = FakeBackend({"summarizer": [{"summary": "  Defines the App class.  "}]})
    fs = FakeFileSystem({"src/app.py": "y" * 3000})
    assembler = ContextAssembler(fs, SummarizerAgent(backend), max_chars_per_file=1000)

    snippet = assembler.assemble(_task(title="Review src/app.py"))["src/app.py"]

    assert snippet == f"[Summary of app.py]:\nDefines the App class.\n{SUMMARY_MARKER}"
    assert "about 750 characters" in backend.prompts("summarizer")[0]


def test_failed_summary_falls_back_to_truncation():
    backend = FakeBackend({"summarizer": [RuntimeError("rate limited")]})
    fs = FakeFileSystem({"src/app.py": "y" * 3000})
    assembler = ContextAssembler(fs, SummarizerAgent(backend), max_chars_per_file=1000)

    snippet = assembler.assemble(_task(title="Review src/app.py"))["src/app.py"]

    assert snippet.endswith(TRUNCATION_MARKER)
    assert len(snippet) == 1000 + 1 + len(TRUNCATION_MARKER)


def test_no_candidates_means_no_filesystem_access():
    fs = FakeFileSystem({"x.py": "x"})
    assembler = ContextAssembler(fs)

    assert assembler.assemble(_task(title="Think harder")) == {}
    assert fs.reads == []

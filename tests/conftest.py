from pathlib import Path

import pytest

from refdb.config import UpdateConfig

JSON_DOC = """# json

Encode and decode JSON documents.

## Usage

```python
import json
json.dumps({"a": 1})
```

## Errors

Raises ValueError on malformed input.
"""

SOCKET_DOC = """<html><head><title>socket</title></head>
<body><main>
<h1>socket</h1>
<p>Low-level networking interface.</p>
<h2 id="creating">Creating sockets</h2>
<p>Use socket.socket().</p>
<pre><code class="language-python">s = socket.socket()</code></pre>
</main></body></html>
"""


class FakeReporter:
    def __init__(self, fail_with=None):
        self.reports = []
        self.fail_with = fail_with

    def report_error(self, record):
        self.reports.append(record)
        if self.fail_with is not None:
            raise self.fail_with


def write_source_tree(root: Path) -> Path:
    src = root / "src"
    (src / "library").mkdir(parents=True)
    (src / "library" / "json.md").write_text(JSON_DOC, encoding="utf-8")
    (src / "library" / "socket.html").write_text(SOCKET_DOC, encoding="utf-8")
    return src


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("REFDB_VERSION", raising=False)
    monkeypatch.delenv("REFDB_ENCODING", raising=False)


@pytest.fixture
def work_root(tmp_path):
    root = tmp_path / "work"
    write_source_tree(root)
    return root


@pytest.fixture
def config(work_root, tmp_path):
    state = tmp_path / "state"
    state.mkdir()
    return UpdateConfig(work_root=work_root, state_dir=state)


@pytest.fixture
def reporter():
    return FakeReporter()

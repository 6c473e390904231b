import pytest

import config
from main import main


class TestCommandLine:
    def test_version(self, capsys) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])

        assert exc_info.value.code == 0
        assert config.VERSION in capsys.readouterr().out

    def test_missing_sources_file(self, tmp_path, capsys) -> None:
        code = main(["--sources", str(tmp_path / "nope.json"), "--query", "dragon"])

        assert code == 1
        assert "not found" in capsys.readouterr().out

    def test_search_requires_query(self) -> None:
        assert main(["--sources", config.DEFAULT_SOURCES_PATH]) == 1

"""主机注册表单元测试

覆盖以下场景：
- 行解析：8 列、旧版本缺列、非法字段、带引号的名称
- 按最近连接时间降序排序，时间相同时保持文件顺序
- 追加记录与名称唯一性
- 单字段修改：其他行（含注释）字节不变
- 注册表缺失时的模板创建
- 写入失败时抛出 RegistryWriteError
"""
import os
from pathlib import Path

import pytest
from loguru import logger

from ssh_connect.exceptions import DuplicateHostError, RegistryWriteError
from ssh_connect.host_registry import TEMPLATE, HostRecord, HostRegistry, name_problem

from conftest import ScriptedPrompter


class TestHostRecord:
    """HostRecord 解析与序列化测试组。"""

    def test_from_line_full(self) -> None:
        """完整的 8 列记录应正确解析。"""
        record = HostRecord.from_line("Private DB,dbuser,10.0.1.50,2222,1700000000,1,Bastion,0\n")
        assert record.name == "Private DB"
        assert record.user == "dbuser"
        assert record.hostname == "10.0.1.50"
        assert record.port == 2222
        assert record.last_connected_at == 1700000000
        assert record.key_installed is True
        assert record.jump_host_name == "Bastion"
        assert record.is_jump_host is False
        assert record.has_jump_host is True

    def test_from_line_strips_whitespace(self) -> None:
        """字段两侧空白应被去除。"""
        record = HostRecord.from_line(" Web , admin , web.example , 22 , 0 , 0 , 0 , 1 ")
        assert record.name == "Web"
        assert record.hostname == "web.example"
        assert record.is_jump_host is True

    def test_from_line_legacy_short_row(self) -> None:
        """旧版本缺少的尾部字段按默认值补齐。"""
        record = HostRecord.from_line("Old,root,old.example,2200,5,1")
        assert record.port == 2200
        assert record.key_installed is True
        assert record.jump_host_name == "0"
        assert record.has_jump_host is False
        assert record.is_jump_host is False

    @pytest.mark.parametrize(
        "line",
        [
            "only,two",
            "a,b,c,22,0,0,0,0,extra",
            "a,b,c,notaport,0,0,0,0",
            "a,b,c,22,0,2,0,0",
            "a,b,c,70000,0,0,0,0",
            ",b,c,22,0,0,0,0",
        ],
    )
    def test_from_line_rejects_malformed(self, line: str) -> None:
        """字段数量或取值非法时抛出 ValueError。"""
        with pytest.raises(ValueError):
            HostRecord.from_line(line)

    def test_to_line_quotes_commas(self) -> None:
        """名称中包含逗号时序列化后仍能解析回原值。"""
        record = HostRecord(name="Lab, rack 3", user="u", hostname="h")
        line = record.to_line()
        assert line.startswith('"Lab, rack 3",')
        assert HostRecord.from_line(line) == record

    @pytest.mark.parametrize("name", ["#ops", "  #ops", " Web", "Web ", "a\nb", ""])
    def test_name_that_cannot_round_trip_rejected(self, name: str) -> None:
        """注释前缀、首尾空白、换行的名称无法原样读回，构造时拒绝。"""
        assert name_problem(name) is not None
        with pytest.raises(ValueError):
            HostRecord(name=name, user="a", hostname="h")

    def test_field_with_surrounding_space_rejected(self) -> None:
        with pytest.raises(ValueError):
            HostRecord(name="Web", user=" a", hostname="h")

    def test_name_with_inner_hash_round_trips(self) -> None:
        record = HostRecord(name="ops #2", user="a", hostname="h")
        assert name_problem(record.name) is None
        assert HostRecord.from_line(record.to_line()) == record

    def test_to_line_column_order(self) -> None:
        """序列化的列顺序固定为 8 列格式。"""
        record = HostRecord(
            name="DB",
            user="dbuser",
            hostname="10.0.1.50",
            port=22,
            last_connected_at=42,
            key_installed=False,
            jump_host_name="Bastion",
            is_jump_host=False,
        )
        assert record.to_line() == "DB,dbuser,10.0.1.50,22,42,0,Bastion,0"


class TestLoad:
    """读取与排序测试组。"""

    def test_missing_file_returns_empty(self, settings) -> None:
        """注册表不存在时返回空列表。"""
        assert HostRegistry(settings=settings).load() == []

    def test_sorted_by_timestamp_desc_stable(self, write_registry) -> None:
        """按时间戳降序排序，时间相同保持文件顺序。"""
        registry = write_registry(
            "A,u,a,22,100,0,0,0",
            "B,u,b,22,300,0,0,0",
            "C,u,c,22,100,0,0,0",
            "D,u,d,22,0,0,0,0",
        )
        assert [r.name for r in registry.load()] == ["B", "A", "C", "D"]

    def test_comments_blank_and_malformed_skipped(self, write_registry) -> None:
        """注释、空行和无法解析的行被忽略。"""
        registry = write_registry(
            "# comment",
            "",
            "   ",
            "Good,u,good.example,22,0,0,0,0",
            "broken line",
            "#Commented,u,c,22,0,0,0,0",
        )
        assert [r.name for r in registry.load()] == ["Good"]

    def test_template_has_no_active_records(self, settings) -> None:
        """模板文件中的示例都是注释行。"""
        registry = HostRegistry(settings=settings)
        registry.create_template()
        assert registry.path.read_text(encoding="utf-8") == TEMPLATE
        assert registry.load() == []

    def test_non_utf8_line_skipped_with_warning(self, settings) -> None:
        """含非UTF-8字节的行跳过并告警，不影响其他记录。"""
        settings.hosts_file.parent.mkdir(parents=True)
        settings.hosts_file.write_bytes(b"Web,w,web,22,0,1,0,0\nCaf\xe9,u,h,22,0,0,0,0\n")
        warnings: list[str] = []
        sink_id = logger.add(lambda msg: warnings.append(msg.record["message"]), level="WARNING")
        try:
            names = [r.name for r in HostRegistry(settings=settings).load()]
        finally:
            logger.remove(sink_id)
        assert names == ["Web"]
        assert len(warnings) == 1
        assert "第2行" in warnings[0]


class TestAppend:
    """追加记录测试组。"""

    def test_append_creates_parent_dir(self, settings) -> None:
        """父目录不存在时自动创建。"""
        registry = HostRegistry(settings=settings)
        assert not settings.hosts_file.parent.exists()
        registry.append_record(HostRecord(name="New", user="u", hostname="n.example"))
        assert registry.path.read_text(encoding="utf-8") == "New,u,n.example,22,0,0,0,0\n"

    def test_append_adds_missing_newline(self, settings) -> None:
        """上一行缺少换行符时先补全。"""
        settings.hosts_file.parent.mkdir(parents=True)
        settings.hosts_file.write_text("A,u,a,22,0,0,0,0", encoding="utf-8")
        registry = HostRegistry(settings=settings)
        registry.append_record(HostRecord(name="B", user="u", hostname="b"))
        assert registry.path.read_text(encoding="utf-8") == (
            "A,u,a,22,0,0,0,0\nB,u,b,22,0,0,0,0\n"
        )

    def test_append_duplicate_name_raises(self, write_registry) -> None:
        """名称重复时抛出 DuplicateHostError 且文件不变。"""
        registry = write_registry("A,u,a,22,0,0,0,0")
        before = registry.path.read_bytes()
        with pytest.raises(DuplicateHostError) as exc_info:
            registry.append_record(HostRecord(name="A", user="x", hostname="y"))
        assert exc_info.value.name == "A"
        assert registry.path.read_bytes() == before

    def test_appended_record_is_loaded(self, write_registry) -> None:
        """追加的记录可以被再次读取。"""
        registry = write_registry("# header")
        record = HostRecord(name="DB", user="dbuser", hostname="10.0.1.50", jump_host_name="Bastion")
        registry.append_record(record)
        assert registry.records() == [record]

    def test_append_keeps_undecodable_bytes(self, settings) -> None:
        """追加记录时，无法解码的行按原始字节写回。"""
        settings.hosts_file.parent.mkdir(parents=True)
        settings.hosts_file.write_bytes(b"Caf\xe9,u,h,22,0,0,0,0\n")
        registry = HostRegistry(settings=settings)
        registry.append_record(HostRecord(name="Web", user="w", hostname="web"))
        assert registry.path.read_bytes() == b"Caf\xe9,u,h,22,0,0,0,0\nWeb,w,web,22,0,0,0,0\n"


class TestUpdateField:
    """单字段修改测试组。"""

    def test_touch_updates_only_target_line(self, settings) -> None:
        """只修改目标行，其余行（注释、CRLF、缺列旧格式）字节不变。"""
        settings.hosts_file.parent.mkdir(parents=True)
        original = (
            "# keep me ,with commas\r\n"
            "A,u,a,22,100,0,0,0\r\n"
            "\n"
            "Legacy,u,l,22,5\n"
            "B,u,b,22,200,1,0,0"
        )
        settings.hosts_file.write_bytes(original.encode("utf-8"))
        registry = HostRegistry(settings=settings)

        assert registry.touch("A", timestamp=999) == 1

        assert registry.path.read_bytes().decode("utf-8") == (
            "# keep me ,with commas\r\n"
            "A,u,a,22,999,0,0,0\r\n"
            "\n"
            "Legacy,u,l,22,5\n"
            "B,u,b,22,200,1,0,0"
        )

    def test_rewrite_keeps_undecodable_line_bytes(self, settings) -> None:
        """修改其他行时，非UTF-8行字节不变。"""
        settings.hosts_file.parent.mkdir(parents=True)
        settings.hosts_file.write_bytes(b"Web,w,web,22,0,1,0,0\nCaf\xe9,u,h,22,0,0,0,0\n")
        registry = HostRegistry(settings=settings)
        assert registry.touch("Web", timestamp=5) == 1
        assert registry.path.read_bytes() == b"Web,w,web,22,5,1,0,0\nCaf\xe9,u,h,22,0,0,0,0\n"

    def test_last_line_without_newline_gets_one(self, write_registry) -> None:
        """被修改的行原本没有换行符时补上换行符。"""
        registry = write_registry()
        registry.path.write_text("A,u,a,22,0,0,0,0", encoding="utf-8")
        registry.mark_key_installed("A")
        assert registry.path.read_text(encoding="utf-8") == "A,u,a,22,0,1,0,0\n"

    def test_no_match_leaves_file_untouched(self, write_registry) -> None:
        """没有匹配记录时不写文件。"""
        registry = write_registry("A,u,a,22,0,0,0,0")
        mtime = os.stat(registry.path).st_mtime_ns
        assert registry.touch("missing", timestamp=1) == 0
        assert os.stat(registry.path).st_mtime_ns == mtime

    def test_update_by_address(self, write_registry) -> None:
        """按 user+hostname+port 三元组匹配修改。"""
        registry = write_registry(
            "A,u,h,22,0,0,0,0",
            "B,u,h,2222,0,0,0,0",
        )
        assert registry.update_field_by_address("u", "h", 2222, "key_installed", True) == 1
        records = {r.name: r for r in registry.records()}
        assert records["A"].key_installed is False
        assert records["B"].key_installed is True

    def test_rename_to_existing_name_raises(self, write_registry) -> None:
        """改名为已存在的名称时抛出 DuplicateHostError。"""
        registry = write_registry("A,u,a,22,0,0,0,0", "B,u,b,22,0,0,0,0")
        with pytest.raises(DuplicateHostError):
            registry.update_field("A", "name", "B")

    def test_unknown_field_raises(self, write_registry) -> None:
        """未知字段名抛出 ValueError。"""
        registry = write_registry("A,u,a,22,0,0,0,0")
        with pytest.raises(ValueError):
            registry.update_field("A", "colour", "red")  # type: ignore[arg-type]

    def test_write_failure_raises_and_keeps_file(
        self,
        write_registry,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """原子替换失败时抛出 RegistryWriteError，原文件与临时文件均不残留变化。"""
        registry = write_registry("A,u,a,22,0,0,0,0")
        before = registry.path.read_bytes()

        def _fail(src, dst):
            raise PermissionError(13, "Permission denied")

        monkeypatch.setattr(os, "replace", _fail)
        with pytest.raises(RegistryWriteError):
            registry.touch("A", timestamp=5)

        assert registry.path.read_bytes() == before
        assert sorted(p.name for p in registry.path.parent.iterdir()) == [registry.path.name]


class TestEnsureExists:
    """注册表缺失处理测试组。"""

    def test_existing_file_no_prompt(self, write_registry) -> None:
        """注册表已存在时不提问。"""
        registry = write_registry("A,u,a,22,0,0,0,0")
        prompter = ScriptedPrompter()
        assert registry.ensure_exists(prompter) is True
        assert prompter.questions == []

    def test_create_on_yes(self, settings) -> None:
        """回答 y 时创建模板并继续。"""
        registry = HostRegistry(settings=settings)
        prompter = ScriptedPrompter(["y"])
        assert registry.ensure_exists(prompter) is True
        assert registry.path.read_text(encoding="utf-8") == TEMPLATE
        assert str(settings.hosts_file) in prompter.questions[0]

    def test_decline(self, settings) -> None:
        """拒绝创建时不写文件并返回 False。"""
        registry = HostRegistry(settings=settings)
        prompter = ScriptedPrompter(["n"])
        assert registry.ensure_exists(prompter) is False
        assert not registry.path.exists()

    def test_unwritable_location(self, tmp_path: Path) -> None:
        """目录无法创建时抛出 RegistryWriteError。"""
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        registry = HostRegistry(path=blocker / "hosts.conf")
        prompter = ScriptedPrompter(["y"])
        with pytest.raises(RegistryWriteError):
            registry.ensure_exists(prompter)

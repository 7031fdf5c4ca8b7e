"""路径修复测试

recalculate_path / rebuild_all_paths 根据 parent_id 重新计算路径。
"""

import logging

import pytest
from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, sessionmaker, scoped_session

from ytree.orm import CoreModel, Base
from ytree.orm.tree import TreeMixin, TreeFieldsWithParentMixin, PathChange


class RepairNode(TreeMixin, TreeFieldsWithParentMixin, CoreModel):
    """路径修复测试节点"""
    __tablename__ = "test_repair_node"
    __table_args__ = {'extend_existing': True}

    name: Mapped[str] = mapped_column(String(100))


class TestTreeRepair:
    """路径修复测试"""

    @pytest.fixture(autouse=True)
    def setup_db(self, memory_engine):
        """初始化数据库"""
        Base.metadata.create_all(bind=memory_engine)
        SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=memory_engine)
        self.session_scope = scoped_session(SessionLocal)
        CoreModel.query = self.session_scope.query_property()
        yield
        self.session_scope.remove()

    def _create_tree(self):
        r = RepairNode(name="R").save(commit=True)
        c = RepairNode(name="C", parent_id=r.id).save(commit=True)
        g = RepairNode(name="G", parent_id=c.id).save(commit=True)
        leaf = RepairNode(name="L", parent_id=g.id).save(commit=True)
        return r, c, g, leaf

    def _corrupt(self, node, path, depth):
        RepairNode.bulk_update_by_ids([node.id], {"path": path, "depth": depth}, commit=True)

    def _paths(self):
        self.session_scope.expire_all()
        return {n.name: (n.path, n.depth) for n in RepairNode.query.all()}

    def test_consistent_tree_has_no_changes(self):
        """测试数据一致时没有变更"""
        r, c, g, leaf = self._create_tree()

        assert r.recalculate_path() == []
        assert RepairNode.rebuild_all_paths() == 0

    def test_recalculate_subtree(self):
        """测试修复子树路径"""
        r, c, g, leaf = self._create_tree()
        self._corrupt(g, [42], 9)
        self._corrupt(leaf, [], 0)

        changes = c.recalculate_path()
        self.session_scope.commit()

        assert {change.id for change in changes} == {g.id, leaf.id}
        paths = self._paths()
        assert paths["G"] == ([r.id, c.id], 2)
        assert paths["L"] == ([r.id, c.id, g.id], 3)

    def test_recalculate_self(self):
        """测试修复节点自身路径"""
        r, c, g, leaf = self._create_tree()
        self._corrupt(c, [], 0)

        changes = c.recalculate_path()

        assert changes == [PathChange(c.id, [r.id], 1)]
        assert self._paths()["C"] == ([r.id], 1)

    def test_dry_run_does_not_write(self, caplog):
        """测试 dry_run 只记录不写入"""
        r, c, g, leaf = self._create_tree()
        self._corrupt(leaf, [1, 2, 3, 4, 5], 5)

        with caplog.at_level(logging.INFO, logger="ytree"):
            changes = r.recalculate_path(dry_run=True)

        assert changes == [PathChange(leaf.id, [r.id, c.id, g.id], 3)]
        assert self._paths()["L"] == ([1, 2, 3, 4, 5], 5)
        assert "dry-run" in caplog.text

    def test_rebuild_all_paths(self):
        """测试重建整张表的路径"""
        r, c, g, leaf = self._create_tree()
        other = RepairNode(name="O").save(commit=True)
        self._corrupt(c, [7], 1)
        self._corrupt(leaf, [], 0)
        self._corrupt(other, [3], 1)

        count = RepairNode.rebuild_all_paths()
        self.session_scope.commit()

        assert count == 3
        paths = self._paths()
        assert paths["C"] == ([r.id], 1)
        assert paths["L"] == ([r.id, c.id, g.id], 3)
        assert paths["O"] == ([], 0)

    def test_rebuild_treats_orphans_as_roots(self):
        """测试父节点不存在的节点按根节点重建"""
        r, c, g, leaf = self._create_tree()
        RepairNode.bulk_update_by_ids([c.id], {"parent_id": 9999}, commit=True)

        count = RepairNode.rebuild_all_paths()
        self.session_scope.commit()

        assert count == 3
        paths = self._paths()
        assert paths["C"] == ([], 0)
        assert paths["G"] == ([c.id], 1)

    def test_rebuild_skips_cycles(self, caplog):
        """测试 parent_id 形成循环的节点保持原样并记录警告"""
        r, c, g, leaf = self._create_tree()
        # C 和 G 互为父节点，脱离根节点
        RepairNode.bulk_update_by_ids([c.id], {"parent_id": g.id}, commit=True)

        with caplog.at_level(logging.WARNING, logger="ytree"):
            count = RepairNode.rebuild_all_paths(dry_run=True)

        assert count == 0
        assert "无法从根节点到达" in caplog.text

    def test_recalculate_stops_on_cycle(self, caplog):
        """测试子树中存在循环时不会死循环"""
        r, c, g, leaf = self._create_tree()
        RepairNode.bulk_update_by_ids([c.id], {"parent_id": leaf.id}, commit=True)

        with caplog.at_level(logging.WARNING, logger="ytree"):
            changes = g.recalculate_path(dry_run=True)

        assert "形成循环" in caplog.text
        assert [change.id for change in changes] == [c.id]

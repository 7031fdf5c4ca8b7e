"""DescendantUpdater 测试

测试子孙路径级联更新：
1. 前缀替换
2. 幂等性（重复执行不再改动数据）
3. 不一致数据的逐行修复
4. 批量写入与级联失败
"""

import pytest
from sqlalchemy import String
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Mapped, mapped_column, sessionmaker, scoped_session

from ytree.orm import CoreModel, Base
from ytree.orm.tree import (
    TreeMixin,
    TreeFieldsWithParentMixin,
    DescendantUpdater,
    PathChange,
    CascadeIncompleteError,
)


class CascadeNode(TreeMixin, TreeFieldsWithParentMixin, CoreModel):
    """级联测试节点"""
    __tablename__ = "test_cascade_node"
    __table_args__ = {'extend_existing': True}

    name: Mapped[str] = mapped_column(String(100))


class TestDescendantUpdater:
    """子孙路径批量更新测试"""

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
        """R -> C -> G -> L，以及另一个根 R2"""
        r = CascadeNode(name="R").save(commit=True)
        c = CascadeNode(name="C", parent_id=r.id).save(commit=True)
        g = CascadeNode(name="G", parent_id=c.id).save(commit=True)
        leaf = CascadeNode(name="L", parent_id=g.id).save(commit=True)
        r2 = CascadeNode(name="R2").save(commit=True)
        return r, c, g, leaf, r2

    def _paths(self):
        self.session_scope.expire_all()
        return {n.name: (n.path, n.depth) for n in CascadeNode.query.all()}

    def test_rewrite_replaces_prefix(self):
        """测试子孙路径前缀替换"""
        r, c, g, leaf, r2 = self._create_tree()
        updater = DescendantUpdater(CascadeNode, self.session_scope())

        count = updater.rewrite(c.id, [r.id], [r2.id, r.id], 1)
        self.session_scope.commit()

        paths = self._paths()
        assert count == 2
        assert paths["G"] == ([r2.id, r.id, c.id], 3)
        assert paths["L"] == ([r2.id, r.id, c.id, g.id], 4)
        # 节点自身不由 rewrite 修改
        assert paths["C"] == ([r.id], 1)

    def test_rewrite_is_idempotent(self):
        """测试相同参数重复执行结果不变"""
        r, c, g, leaf, r2 = self._create_tree()
        updater = DescendantUpdater(CascadeNode, self.session_scope())

        first = updater.rewrite(c.id, [r.id], [r2.id], 0)
        after_first = self._paths()
        second = updater.rewrite(c.id, [r.id], [r2.id], 0)
        after_second = self._paths()

        assert first == 2
        assert second == 0
        assert after_first == after_second

    def test_rewrite_same_path_is_noop(self):
        """测试新旧路径相同时不写入"""
        r, c, g, leaf, r2 = self._create_tree()
        updater = DescendantUpdater(CascadeNode, self.session_scope())

        assert updater.rewrite(c.id, [r.id], [r.id]) == 0

    def test_delta_depth_follows_paths(self):
        """测试深度变化量与路径长度不一致时以路径为准"""
        r, c, g, leaf, r2 = self._create_tree()
        updater = DescendantUpdater(CascadeNode, self.session_scope())

        updater.rewrite(c.id, [r.id], [], delta_depth=5)

        paths = self._paths()
        assert paths["G"] == ([c.id], 1)
        assert paths["L"] == ([c.id, g.id], 2)

    def test_repairs_unaligned_descendants(self):
        """测试路径前缀与节点旧路径不一致的子孙也被修复"""
        r, c, g, leaf, r2 = self._create_tree()
        # 人为制造不一致：L 的祖先前缀错误，深度也错误
        CascadeNode.bulk_update_by_ids([leaf.id], {"path": [999, c.id, g.id], "depth": 7}, commit=True)

        updater = DescendantUpdater(CascadeNode, self.session_scope())
        count = updater.rewrite(c.id, [r.id], [r2.id])

        paths = self._paths()
        assert count == 2
        assert paths["G"] == ([r2.id, c.id], 2)
        assert paths["L"] == ([r2.id, c.id, g.id], 3)

    def test_loaded_instances_are_refreshed(self):
        """测试 session 中已加载的实例会看到新路径"""
        r, c, g, leaf, r2 = self._create_tree()
        assert leaf.path == [r.id, c.id, g.id]

        DescendantUpdater(CascadeNode, self.session_scope()).rewrite(c.id, [r.id], [r2.id])

        assert leaf.path == [r2.id, c.id, g.id]
        assert leaf.depth == 3

    def test_apply_in_batches(self):
        """测试按主键分批写入路径变更"""
        r, c, g, leaf, r2 = self._create_tree()
        updater = DescendantUpdater(CascadeNode, self.session_scope(), batch_size=1)

        written = updater.apply([
            PathChange(g.id, [r2.id, c.id], 2),
            PathChange(leaf.id, [r2.id, c.id, g.id], 3),
        ])

        paths = self._paths()
        assert written == 2
        assert paths["G"] == ([r2.id, c.id], 2)
        assert paths["L"] == ([r2.id, c.id, g.id], 3)

    def test_apply_empty(self):
        """测试没有变更时不写入"""
        updater = DescendantUpdater(CascadeNode, self.session_scope())
        assert updater.apply([]) == 0

    def test_cascade_failure_is_reported_and_retryable(self, monkeypatch):
        """测试级联失败时抛出 CascadeIncompleteError，并可用相同参数重试"""
        r, c, g, leaf, r2 = self._create_tree()

        original = DescendantUpdater._splice_prefix

        def broken(self, *args, **kwargs):
            raise OperationalError("UPDATE", {}, Exception("database is locked"))

        monkeypatch.setattr(DescendantUpdater, "_splice_prefix", broken)
        with pytest.raises(CascadeIncompleteError) as exc_info:
            c.move_to(r2.id)

        err = exc_info.value
        assert err.node_id == c.id
        assert err.old_path == [r.id]
        assert err.new_path == [r2.id]
        assert err.delta_depth == 0
        assert err.status_code == 503

        monkeypatch.setattr(DescendantUpdater, "_splice_prefix", original)
        DescendantUpdater(CascadeNode, self.session_scope()).rewrite(
            err.node_id, err.old_path, err.new_path, err.delta_depth
        )
        self.session_scope.commit()

        paths = self._paths()
        assert paths["C"] == ([r2.id], 1)
        assert paths["G"] == ([r2.id, c.id], 2)
        assert paths["L"] == ([r2.id, c.id, g.id], 3)

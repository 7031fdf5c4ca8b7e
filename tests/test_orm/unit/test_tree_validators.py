"""移动校验测试"""

import pytest
from sqlalchemy import Integer, String, event
from sqlalchemy.orm import Mapped, mapped_column, sessionmaker, scoped_session

from ytree.orm import CoreModel, Base
from ytree.orm.tree import (
    TreeMixin,
    TreeFieldsWithParentMixin,
    validate_scope,
    validate_cyclic,
    validate_path_length,
    validate_move,
    MaterializedPath,
    CyclicStructureError,
    PathTooLongError,
    ScopeMismatchError,
)
from ytree.exceptions import ErrorCode


class ShopNode(TreeMixin, TreeFieldsWithParentMixin, CoreModel):
    """按店铺和语言分区的节点"""
    __tablename__ = "test_validator_shop_node"
    __table_args__ = {'extend_existing': True}
    __tree_scope__ = ["shop_id", "locale"]

    shop_id: Mapped[int] = mapped_column(Integer, nullable=False)
    locale: Mapped[str] = mapped_column(String(10), nullable=False)
    name: Mapped[str] = mapped_column(String(100))


class TestValidators:
    """校验函数测试"""

    @pytest.fixture(autouse=True)
    def setup_db(self, memory_engine):
        """初始化数据库"""
        Base.metadata.create_all(bind=memory_engine)
        SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=memory_engine)
        self.session_scope = scoped_session(SessionLocal)
        CoreModel.query = self.session_scope.query_property()
        self.options = ShopNode.tree_options()
        yield
        self.session_scope.remove()

    def test_scope_ok(self):
        parent = ShopNode(shop_id=1, locale="zh", name="p").save(commit=True)
        node = ShopNode(shop_id=1, locale="zh", name="n")

        validate_scope(node, parent, self.options)

    def test_scope_mismatch_lists_fields(self):
        """测试返回所有不一致的范围字段"""
        parent = ShopNode(shop_id=1, locale="zh", name="p").save(commit=True)
        node = ShopNode(shop_id=2, locale="en", name="n")

        with pytest.raises(ScopeMismatchError) as exc_info:
            validate_scope(node, parent, self.options)

        err = exc_info.value
        assert err.scope_fields == ["shop_id", "locale"]
        assert err.code == ErrorCode.TREE_SCOPE_MISMATCH
        assert err.status_code == 422
        assert err.field == "parent_id"

    def test_scope_skipped_for_root(self):
        node = ShopNode(shop_id=2, locale="en", name="n")
        validate_scope(node, None, self.options)

    def test_cyclic_self_parent(self):
        node = ShopNode(shop_id=1, locale="zh", name="n").save(commit=True)

        with pytest.raises(CyclicStructureError) as exc_info:
            validate_cyclic(node, node, self.options)
        assert exc_info.value.code == ErrorCode.TREE_CYCLIC_STRUCTURE

    def test_cyclic_descendant_parent(self):
        root = ShopNode(shop_id=1, locale="zh", name="r").save(commit=True)
        child = ShopNode(shop_id=1, locale="zh", name="c", parent_id=root.id).save(commit=True)
        leaf = ShopNode(shop_id=1, locale="zh", name="l", parent_id=child.id).save(commit=True)

        with pytest.raises(CyclicStructureError):
            validate_cyclic(root, leaf, self.options)
        with pytest.raises(CyclicStructureError):
            validate_cyclic(child, leaf, self.options)

        validate_cyclic(leaf, root, self.options)
        validate_cyclic(root, None, self.options)

    def test_new_node_cannot_form_cycle(self):
        root = ShopNode(shop_id=1, locale="zh", name="r").save(commit=True)
        node = ShopNode(shop_id=1, locale="zh", name="n")

        validate_cyclic(node, root, self.options)

    def test_scope_checked_before_cycle(self):
        """测试先校验范围，再校验循环"""
        root = ShopNode(shop_id=1, locale="zh", name="r").save(commit=True)
        child = ShopNode(shop_id=1, locale="zh", name="c", parent_id=root.id).save(commit=True)
        root.shop_id = 9

        with pytest.raises(ScopeMismatchError):
            validate_move(root, child, self.options)

    def test_cyclic_uses_loaded_parent_path(self, memory_engine):
        """测试循环校验只读取已加载的父节点，不发出 SQL"""
        root = ShopNode(shop_id=1, locale="zh", name="r").save(commit=True)
        leaf = ShopNode(shop_id=1, locale="zh", name="l", parent_id=root.id).save(commit=True)
        assert leaf.path == [root.id]

        statements = []

        def _record(conn, cursor, statement, parameters, context, executemany):
            statements.append(statement)

        event.listen(memory_engine, "before_cursor_execute", _record)
        try:
            with pytest.raises(CyclicStructureError):
                validate_cyclic(root, leaf, self.options)
        finally:
            event.remove(memory_engine, "before_cursor_execute", _record)

        assert statements == []


class ShortPathNode(TreeMixin, TreeFieldsWithParentMixin, CoreModel):
    """路径列很短的节点"""
    __tablename__ = "test_validator_short_path_node"
    __table_args__ = {'extend_existing': True}

    path: Mapped[list] = mapped_column(MaterializedPath(8, item_type=int), nullable=False, default=list)
    name: Mapped[str] = mapped_column(String(100))


class TestPathLength:
    """路径长度校验测试"""

    @pytest.fixture(autouse=True)
    def setup_db(self, memory_engine):
        """初始化数据库"""
        Base.metadata.create_all(bind=memory_engine)
        SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=memory_engine)
        self.session_scope = scoped_session(SessionLocal)
        CoreModel.query = self.session_scope.query_property()
        yield
        self.session_scope.remove()

    def _chain(self, size, parent_id=None):
        nodes = []
        for i in range(size):
            node = ShortPathNode(name=f"n{i}", parent_id=parent_id).save(commit=True)
            parent_id = node.id
            nodes.append(node)
        return nodes

    def test_column_length(self):
        assert ShortPathNode.tree_options().path_type.max_length == 8

    def test_new_node_too_deep(self):
        """测试 /1/2/3/4/ 超过 8 个字符"""
        nodes = self._chain(4)
        assert nodes[-1].path == [1, 2, 3]

        with pytest.raises(PathTooLongError) as exc_info:
            ShortPathNode(name="too deep", parent_id=nodes[-1].id).save(commit=True)

        err = exc_info.value
        assert err.code == ErrorCode.TREE_PATH_TOO_LONG
        assert err.status_code == 422
        assert err.length == 9
        assert err.max_length == 8
        assert err.field == "parent_id"
        self.session_scope.rollback()
        assert ShortPathNode.query.count() == 4

    def test_descendant_too_deep_blocks_move(self):
        """测试子孙路径会超长时，移动在写入前被拒绝"""
        a = self._chain(3)
        b = self._chain(2)
        moving, leaf = b
        assert leaf.path == [moving.id]

        with pytest.raises(PathTooLongError) as exc_info:
            moving.move_to(a[-1].id, commit=True)

        assert exc_info.value.length == 9
        assert moving.parent_id is None
        self.session_scope.rollback()
        self.session_scope.expire_all()
        assert self.session_scope.get(ShortPathNode, moving.id).path == []
        assert self.session_scope.get(ShortPathNode, leaf.id).path == [moving.id]

    def test_shorter_move_skips_descendant_check(self):
        a = self._chain(3)
        a[1].move_to(None, commit=True)

        assert a[1].path == []
        self.session_scope.expire_all()
        assert self.session_scope.get(ShortPathNode, a[2].id).path == [a[1].id]

    def test_validate_directly(self):
        node = ShortPathNode(name="n")
        options = ShortPathNode.tree_options()

        validate_path_length(node, [], [1, 2, 3], options)
        with pytest.raises(PathTooLongError):
            validate_path_length(node, [], [1, 2, 300], options)

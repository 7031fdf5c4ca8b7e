"""树形结构移动演示

本脚本演示 ytree 物化路径树的常用操作：
1. 创建节点（路径、深度自动维护）
2. 查询祖先、子孙、兄弟
3. 移动子树（子孙路径级联更新）
4. before_move 钩子拒绝移动
5. 路径修复
6. 级联删除

运行方式：
    python demo_tree_move.py
"""

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ytree.exceptions import BusinessException
from ytree.log import setup_root_logger
from ytree.orm import Base, CoreModel, init_database
from ytree.orm.tree import TreeMixin, TreeFieldsWithParentMixin


# ==================== 模型定义 ====================

class Category(TreeMixin, TreeFieldsWithParentMixin, CoreModel):
    """商品分类"""
    __tree_order__ = ["depth", "sort_order"]

    name: Mapped[str] = mapped_column(String(100))
    sort_order: Mapped[int] = mapped_column(Integer, default=0)


@Category.before_move
def limit_depth(ctx):
    """分类最多 4 层"""
    return ctx.new_depth <= 3


# ==================== 辅助函数 ====================

def print_section(title: str):
    """打印章节标题"""
    print(f"\n{'='*70}")
    print(f"  {title}")
    print(f"{'='*70}\n")


def print_tree():
    """按缩进打印整棵树"""
    def _walk(nodes):
        for node in nodes:
            print(f"{'    ' * node['depth']}- {node['name']} (id={node['id']}, path={node['path']})")
            _walk(node["children"])
    _walk(Category.get_tree_list())


# ==================== 演示 ====================

def main():
    setup_root_logger(level="INFO")
    engine, session_scope = init_database("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)

    print_section("1. 创建节点")
    digital = Category(name="数码").save(commit=True)
    phone = Category(name="手机", parent_id=digital.id).save(commit=True)
    android = Category(name="安卓手机", parent_id=phone.id).save(commit=True)
    Category(name="折叠屏", parent_id=android.id).save(commit=True)
    home = Category(name="家电").save(commit=True)
    print_tree()

    print_section("2. 查询")
    print(f"安卓手机的路径: {android.get_path_names()}")
    print(f"手机的子孙数量: {phone.get_descendant_count()}")
    print(f"根节点: {[c.name for c in Category.roots()]}")

    print_section("3. 移动子树：手机 -> 家电")
    phone.move_to(home.id, commit=True)
    print_tree()

    print_section("4. 非法移动")
    fold = Category.query.filter_by(name="折叠屏").one()
    for node, target in ((home, fold), (digital, fold)):
        try:
            node.move_to(target.id, commit=True)
        except BusinessException as e:
            session_scope.rollback()
            print(f"[拒绝] {node.name} -> {target.name}: {e.code} {e.message}")

    print_section("5. 路径修复（模拟）")
    print(f"需要修复的节点数: {Category.rebuild_all_paths(dry_run=True)}")

    print_section("6. 级联删除：家电")
    home.delete(commit=True)
    print_tree()


if __name__ == "__main__":
    main()

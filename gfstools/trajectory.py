"""Trajectory tree shared by the particles and weight propagation over it."""

from __future__ import annotations

from typing import Iterable, Sequence

from gfstools.pose import OrientedPoint


class TNode:
    """A pose in a particle's trajectory, linked to the pose before it."""

    def __init__(
        self,
        pose: OrientedPoint,
        weight: float = 0.0,
        parent: TNode | None = None,
        childs: int = 0,
    ):
        self.pose = pose
        self.weight = weight
        self.childs = childs
        self.parent = parent
        self.reading = None
        self.gweight = 0.0
        self.flag = False
        self.acc_weight = 0.0
        self.visit_counter = 0
        if parent is not None:
            parent.childs += 1

    def path(self) -> list[TNode]:
        """This node and its ancestors, newest first."""
        nodes = []
        node: TNode | None = self
        while node is not None:
            nodes.append(node)
            node = node.parent
        return nodes

    def _copy(self, parent: TNode | None) -> TNode:
        twin = TNode.__new__(TNode)
        twin.__dict__.update(self.__dict__)
        twin.parent = parent
        return twin


def copy_trajectories(leaves: Iterable[TNode]) -> list[TNode]:
    """Copy the tree behind ``leaves``, keeping shared ancestors shared."""
    copies: dict[int, TNode] = {}

    def copied(node: TNode | None) -> TNode | None:
        chain = []
        while node is not None and id(node) not in copies:
            chain.append(node)
            node = node.parent
        top = copies[id(node)] if node is not None else None
        for original in reversed(chain):
            top = original._copy(top)
            copies[id(original)] = top
        return top

    result = []
    for leaf in leaves:
        result.append(leaf._copy(copied(leaf.parent)))
    return result


def reset_tree(leaves: Iterable[TNode]) -> None:
    """Clear the accumulated weights and visit counts along every trajectory."""
    for leaf in leaves:
        for node in leaf.path():
            node.acc_weight = 0.0
            node.visit_counter = 0


def propagate_weight(node: TNode | None, weight: float) -> float:
    """Add ``weight`` to ``node``; once all its children reported, pass the sum upwards.

    Returns the weight that reached past the root, or 0 if propagation stopped early.
    """
    while node is not None:
        node.visit_counter += 1
        node.acc_weight += weight
        if node.visit_counter > node.childs:
            raise ValueError("tree node visited more often than it has children")
        if node.visit_counter != node.childs:
            return 0.0
        weight = node.acc_weight
        node = node.parent
    return weight


def propagate_weights(leaves: Sequence[TNode], weights: Sequence[float]) -> float:
    """Spread normalized leaf weights up the tree; return the weight of the root."""
    root_weight = 0.0
    leaf_sum = 0.0
    for leaf, weight in zip(leaves, weights):
        leaf_sum += weight
        leaf.acc_weight = weight
        root_weight += propagate_weight(leaf.parent, weight)
    if abs(leaf_sum - 1.0) > 0.0001 or abs(root_weight - 1.0) > 0.0001:
        raise ValueError(
            f"root->accWeight={root_weight:g}    sum_leaf_weights={leaf_sum:g}"
        )
    return root_weight


def update_tree_weights(leaves: Sequence[TNode], weights: Sequence[float]) -> float:
    """Reset the tree and propagate already normalized leaf weights through it."""
    reset_tree(leaves)
    return propagate_weights(leaves, weights)
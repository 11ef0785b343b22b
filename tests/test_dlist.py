from tinykv.dlist import DList


class Named(DList):
    def __init__(self, name):
        super().__init__()
        self.name = name


def forward(head):
    out = []
    node = head.next
    while node is not head:
        out.append(node.name)
        node = node.next
    return out


def backward(head):
    out = []
    node = head.prev
    while node is not head:
        out.append(node.name)
        node = node.prev
    return out


def make(names):
    head = DList()
    nodes = [Named(n) for n in names]
    for node in nodes:
        head.insert_before(node)
    return head, nodes


def test_new_head_is_empty():
    head = DList()
    assert head.is_empty()
    assert head.next is head and head.prev is head


def test_insert_before_appends_in_order():
    head, _ = make(["a", "b", "c"])
    assert not head.is_empty()
    assert forward(head) == ["a", "b", "c"]
    assert backward(head) == ["c", "b", "a"]


def test_detach_middle():
    head, nodes = make(["a", "b", "c"])
    nodes[1].detach()
    assert forward(head) == ["a", "c"]
    assert backward(head) == ["c", "a"]


def test_move_to_tail():
    head, nodes = make(["a", "b", "c"])
    nodes[0].detach()
    head.insert_before(nodes[0])
    assert forward(head) == ["b", "c", "a"]
    assert head.next is nodes[1]


def test_detach_all_leaves_empty():
    head, nodes = make(["a", "b"])
    for node in nodes:
        node.detach()
    assert head.is_empty()
    assert forward(head) == []
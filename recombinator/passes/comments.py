"""
Comment removal.
"""

from ..engine.visitor import Action, Visitor


class RemoveCommentsVisitor(Visitor):
    """Drops every ``//``, ``#``, ``/* */`` and ``/** */`` comment.

    Empty statements only exist to carry comments (or a stray ``;``), so they
    go as well.
    """

    id = 'remove_comments'
    name = 'Comment removal'
    description = 'Removes all comments'

    def enter(self, node):
        if node.comments:
            node.del_attr('comments')
            self.context.count(self.id, 'comments')
        if node.kind == 'Nop':
            return Action.REMOVE
        return None

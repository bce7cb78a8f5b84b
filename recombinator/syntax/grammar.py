"""
PHP Grammar
===========

LALR(1) grammar for the supported PHP subset, in lark's EBNF dialect.

Precedence is encoded by rule layering, lowest first:

    or < xor < and < ternary < ?? < || < && < | < ^ < & < equality
       < comparison < . < shift < + - < * / % < ! < instanceof
       < unary (- + ~ cast @ ++ -- clone print include, assignment)
       < ** < postfix (calls, fetches) < primary

Assignment lives at the unary layer with a ternary-level right-hand side,
which gives PHP's ``!$a = f()`` and ``$a = $b or $c`` parses. The few
shift/reduce conflicts (dangling ``else``, greedy right-hand sides) resolve
as shift, which is the PHP reading.

Keywords are recognized in lower case only. Comments are ignored by the
parser and collected through a lexer callback.
"""

GRAMMAR = r'''
start: statement*

?statement: block
    | if_stmt
    | "while" "(" expr ")" statement                                  -> while_stmt
    | "do" statement "while" "(" expr ")" ";"                         -> do_while_stmt
    | "for" "(" for_exprs ";" for_exprs ";" for_exprs ")" statement   -> for_stmt
    | foreach_stmt
    | "switch" "(" expr ")" "{" switch_case* "}"                      -> switch_stmt
    | "try" block catch_clause* finally_clause?                       -> try_stmt
    | function_decl
    | class_decl
    | "interface" NAME interface_extends? "{" class_member* "}"       -> interface_decl
    | "trait" NAME "{" class_member* "}"                              -> trait_decl
    | "echo" expr_list _end                                           -> echo_stmt
    | "return" expr? _end                                             -> return_stmt
    | "break" NUMBER? ";"                                             -> break_stmt
    | "continue" NUMBER? ";"                                          -> continue_stmt
    | "throw" expr ";"                                                -> throw_stmt
    | "global" VARIABLE ("," VARIABLE)* ";"                           -> global_stmt
    | "static" static_var ("," static_var)* ";"                       -> static_stmt
    | "unset" "(" expr ("," expr)* ","? ")" ";"                       -> unset_stmt
    | "const" const_item ("," const_item)* ";"                        -> const_stmt
    | "namespace" NAME ";"                                            -> namespace_stmt
    | "namespace" NAME? "{" statement* "}"                            -> namespace_block
    | "use" use_kind? use_item ("," use_item)* ";"                    -> use_stmt
    | "declare" "(" declare_item ("," declare_item)* ")" ";"          -> declare_stmt
    | expr _end                                                       -> expr_stmt
    | INLINE_HTML                                                     -> inline_html
    | ";"                                                             -> nop

_end: ";" | INLINE_HTML

block: "{" statement* "}"

if_stmt: "if" "(" expr ")" statement elseif_clause* else_clause?
elseif_clause: "elseif" "(" expr ")" statement
else_clause: "else" statement

for_exprs: (expr ("," expr)*)?

foreach_stmt: "foreach" "(" expr "as" foreach_target ")" statement
            | "foreach" "(" expr "as" foreach_target "=>" foreach_target ")" statement
foreach_target: postfix
              | "&" postfix                                           -> foreach_ref_target

switch_case: "case" expr _case_sep statement*                         -> case_clause
           | "default" _case_sep statement*                           -> default_clause
_case_sep: ":" | ";"

catch_clause: "catch" "(" catch_types VARIABLE? ")" block
catch_types: NAME ("|" NAME)*
finally_clause: "finally" block

// ── declarations ──

function_decl: "function" ref_flag? NAME "(" params ")" return_type? block

params: (param ("," param)* ","?)?
param: param_modifier* type? ref_flag? variadic? VARIABLE ("=" expr)?
!param_modifier: "public" | "protected" | "private" | "readonly"
ref_flag: "&"
variadic: "..."
static_flag: "static"

return_type: ":" type
type: "?" type_atom                                                   -> nullable_type
    | type_atom ("|" type_atom)*                                      -> union_type
!type_atom: NAME | "array" | "static"

class_decl: class_modifier* "class" NAME class_extends? class_implements? "{" class_member* "}"
!class_modifier: "abstract" | "final" | "readonly"
class_extends: "extends" NAME
class_implements: "implements" name_list
interface_extends: "extends" name_list
name_list: NAME ("," NAME)*

?class_member: method_decl
    | property_decl
    | class_const_decl
    | trait_use
method_decl: member_modifiers "function" ref_flag? NAME "(" params ")" return_type? (block | ";")
property_decl: member_modifiers type? property_item ("," property_item)* ";"
property_item: VARIABLE ("=" expr)?
class_const_decl: member_modifiers "const" const_item ("," const_item)* ";"
trait_use: "use" name_list ";"
member_modifiers: member_modifier*
!member_modifier: "public" | "protected" | "private" | "static" | "abstract" | "final" | "var" | "readonly"

const_item: NAME "=" expr
static_var: VARIABLE ("=" expr)?
!use_kind: "function" | "const"
use_item: NAME ("as" NAME)?
declare_item: NAME "=" expr

// ── expressions ──

expr_list: expr ("," expr)*

?expr: low_or
?low_or: low_xor
    | low_or "or" low_xor                 -> logical_or
?low_xor: low_and
    | low_xor "xor" low_and               -> logical_xor
?low_and: ternary
    | low_and "and" ternary               -> logical_and
?ternary: coalesce
    | coalesce "?" expr ":" ternary       -> ternary
    | coalesce "?" ":" ternary            -> short_ternary
?coalesce: bool_or
    | bool_or "??" coalesce               -> coalesce
?bool_or: bool_and
    | bool_or "||" bool_and               -> bool_or
?bool_and: bit_or
    | bool_and "&&" bit_or                -> bool_and
?bit_or: bit_xor
    | bit_or "|" bit_xor                  -> bit_or
?bit_xor: bit_and
    | bit_xor "^" bit_and                 -> bit_xor
?bit_and: equality
    | bit_and "&" equality                -> bit_and
?equality: comparison
    | equality "==" comparison            -> eq
    | equality "!=" comparison            -> ne
    | equality "<>" comparison            -> ne
    | equality "===" comparison           -> identical
    | equality "!==" comparison           -> not_identical
?comparison: concat
    | comparison "<" concat               -> lt
    | comparison "<=" concat              -> le
    | comparison ">" concat               -> gt
    | comparison ">=" concat              -> ge
    | comparison "<=>" concat             -> spaceship
?concat: shift
    | concat "." shift                    -> concat
?shift: additive
    | shift "<<" additive                 -> shl
    | shift ">>" additive                 -> shr
?additive: multiplicative
    | additive "+" multiplicative         -> add
    | additive "-" multiplicative         -> sub
?multiplicative: not_expr
    | multiplicative "*" not_expr         -> mul
    | multiplicative "/" not_expr         -> div
    | multiplicative "%" not_expr         -> mod
?not_expr: instanceof_expr
    | "!" not_expr                        -> not_
?instanceof_expr: unary
    | unary "instanceof" class_name_ref   -> instanceof
?unary: pow
    | "-" unary                           -> neg
    | "+" unary                           -> pos
    | "~" unary                           -> bit_not
    | CAST unary                          -> cast
    | "@" unary                           -> silence
    | "++" postfix                        -> pre_inc
    | "--" postfix                        -> pre_dec
    | "clone" unary                       -> clone
    | "print" ternary                     -> print_expr
    | include_kind ternary                -> include_expr
    | postfix "=" ternary                 -> assign
    | postfix "=" "&" postfix             -> assign_ref
    | postfix ASSIGN_OP ternary           -> assign_op
?pow: postfix
    | postfix "**" unary                  -> pow

?postfix: primary
    | postfix "[" expr? "]"               -> dim_fetch
    | postfix "->" member_name            -> prop_fetch
    | postfix "?->" member_name           -> nullsafe_prop_fetch
    | postfix "->" member_name arguments  -> method_call
    | postfix "?->" member_name arguments -> nullsafe_method_call
    | postfix "::" NAME arguments         -> static_call
    | postfix "::" VARIABLE               -> static_prop
    | postfix "::" NAME                   -> class_const
    | postfix "::" "class"                -> class_name_const
    | postfix arguments                   -> call
    | postfix "++"                        -> post_inc
    | postfix "--"                        -> post_dec

member_name: NAME
    | VARIABLE
    | "{" expr "}"

arguments: "(" (argument ("," argument)* ","?)? ")"
?argument: expr
    | "..." expr                          -> spread_arg
    | NAME ":" expr                       -> named_arg

?primary: VARIABLE                        -> variable
    | "$" var_target                      -> var_var
    | NAME                                -> name
    | "static"                            -> static_ref
    | NUMBER                              -> number
    | SQ_STRING                           -> sq_string
    | DQ_STRING                           -> dq_string
    | HEREDOC                             -> heredoc
    | SHELL                               -> shell
    | "(" expr ")"
    | "[" array_items "]"                 -> short_array
    | "array" "(" array_items ")"         -> long_array
    | "list" "(" array_items ")"          -> list_array
    | "isset" "(" expr ("," expr)* ","? ")" -> isset
    | "empty" "(" expr ")"                -> empty
    | "eval" "(" expr ")"                 -> eval_expr
    | exit_kind "(" expr? ")"             -> exit_expr
    | exit_kind                           -> exit_expr
    | "new" class_name_ref arguments?     -> new_expr
    | closure
    | arrow_fn
    | "match" "(" expr ")" "{" (match_arm ("," match_arm)* ","?)? "}" -> match_expr

?var_target: VARIABLE                     -> variable
    | "$" var_target                      -> var_var
    | "{" expr "}"

?class_name_ref: NAME                     -> name
    | "static"                            -> static_ref
    | VARIABLE                            -> variable

!include_kind: "include" | "include_once" | "require" | "require_once"
!exit_kind: "exit" | "die"

array_items: array_entry ("," array_entry)*
array_entry: array_item?
?array_item: expr                         -> item
    | expr "=>" expr                      -> keyed_item
    | "&" postfix                         -> ref_item
    | expr "=>" "&" postfix               -> keyed_ref_item
    | "..." expr                          -> spread_item

closure: static_flag? "function" ref_flag? "(" params ")" closure_uses? return_type? block
closure_uses: "use" "(" closure_use ("," closure_use)* ","? ")"
closure_use: ref_flag? VARIABLE
arrow_fn: static_flag? "fn" ref_flag? "(" params ")" return_type? "=>" expr

match_arm: expr ("," expr)* "=>" expr     -> match_arm
    | "default" "=>" expr                 -> match_default

// ── terminals ──

VARIABLE: /\$[A-Za-z_\x80-\uffff][A-Za-z0-9_\x80-\uffff]*/
NAME: /\\?[A-Za-z_\x80-\uffff][A-Za-z0-9_\x80-\uffff]*(?:\\[A-Za-z_\x80-\uffff][A-Za-z0-9_\x80-\uffff]*)*/
NUMBER: /0[xX][0-9a-fA-F]+(?:_[0-9a-fA-F]+)*|0[bB][01]+(?:_[01]+)*|0[oO][0-7]+(?:_[0-7]+)*|(?:\d+(?:_\d+)*)?\.\d+(?:_\d+)*(?:[eE][+-]?\d+(?:_\d+)*)?|\d+(?:_\d+)*(?:\.(?:\d+(?:_\d+)*)?)?(?:[eE][+-]?\d+(?:_\d+)*)?/
SQ_STRING: /'(?:[^'\\]|\\[\s\S])*'/
DQ_STRING: /"(?:[^"\\]|\\[\s\S])*"/
SHELL: /`(?:[^`\\]|\\[\s\S])*`/
HEREDOC: /<<<[ \t]*(?P<hdq>["']?)(?P<hdl>[A-Za-z_]\w*)(?P=hdq)\r?\n[\s\S]*?^[ \t]*(?P=hdl)\b/m
CAST: /\([ \t]*(?:int|integer|bool|boolean|float|double|real|string|array|object|unset|binary)[ \t]*\)/i
ASSIGN_OP: /\*\*=|\?\?=|<<=|>>=|[-+*\/.%&|^]=/
INLINE_HTML: /\?>[\s\S]*?(?:<\?php\b|\Z)/

COMMENT: /\/\/(?:[^\n?]|\?(?!>))*|#(?:[^\n?]|\?(?!>))*|\/\*[\s\S]*?\*\//
WS: /[ \t\f\r\n]+/

%ignore WS
%ignore COMMENT
'''

MAGIC_CONSTANTS = frozenset({
    '__LINE__', '__FILE__', '__DIR__', '__FUNCTION__', '__CLASS__',
    '__TRAIT__', '__METHOD__', '__NAMESPACE__',
})

CAST_TYPES = {
    'int': 'int', 'integer': 'int',
    'bool': 'bool', 'boolean': 'bool',
    'float': 'float', 'double': 'float', 'real': 'float',
    'string': 'string', 'binary': 'string',
    'array': 'array', 'object': 'object', 'unset': 'unset',
}

BINARY_ALIASES = {
    'logical_or': 'or', 'logical_xor': 'xor', 'logical_and': 'and',
    'coalesce': '??', 'bool_or': '||', 'bool_and': '&&',
    'bit_or': '|', 'bit_xor': '^', 'bit_and': '&',
    'eq': '==', 'ne': '!=', 'identical': '===', 'not_identical': '!==',
    'lt': '<', 'le': '<=', 'gt': '>', 'ge': '>=', 'spaceship': '<=>',
    'concat': '.', 'shl': '<<', 'shr': '>>',
    'add': '+', 'sub': '-', 'mul': '*', 'div': '/', 'mod': '%', 'pow': '**',
}

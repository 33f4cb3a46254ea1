"""Core pkb operations: groups, tags, smart lists, duplicates and merges.

Re-exports the public operations so that ``from pkb.tools import X`` works
for the API layer and the CLI.
"""

from pkb.tools.contacts import (
    ContactSnapshot,
    contact_exists,
    contact_get,
    iter_contact_snapshots,
    load_all_contact_snapshots,
    normalize_identifier,
)
from pkb.tools.duplicates import (
    DuplicatePair,
    detect_duplicate_pairs,
    find_duplicates,
    levenshtein_similarity,
    normalize_name,
)
from pkb.tools.groups import (
    contact_groups,
    group_add_contact,
    group_create,
    group_delete,
    group_get,
    group_list,
    group_list_flat,
    group_remove_contact,
    group_update,
)
from pkb.tools.merge import MergePlan, contact_merge, merge_preview
from pkb.tools.rules import (
    Condition,
    ConditionOperator,
    FieldResolver,
    SmartListRules,
    evaluate,
    parse_rules,
)
from pkb.tools.smartlists import (
    get_smart_list_contacts,
    smart_list_create,
    smart_list_delete,
    smart_list_get,
    smart_list_list,
    smart_list_update,
)
from pkb.tools.tags import (
    contact_tags,
    tag_add_contact,
    tag_create,
    tag_delete,
    tag_get,
    tag_list,
    tag_remove_contact,
    tag_update,
)

__all__ = [
    "Condition",
    "ConditionOperator",
    "ContactSnapshot",
    "DuplicatePair",
    "FieldResolver",
    "MergePlan",
    "SmartListRules",
    "contact_exists",
    "contact_get",
    "contact_groups",
    "contact_merge",
    "contact_tags",
    "detect_duplicate_pairs",
    "evaluate",
    "find_duplicates",
    "get_smart_list_contacts",
    "group_add_contact",
    "group_create",
    "group_delete",
    "group_get",
    "group_list",
    "group_list_flat",
    "group_remove_contact",
    "group_update",
    "iter_contact_snapshots",
    "levenshtein_similarity",
    "load_all_contact_snapshots",
    "merge_preview",
    "normalize_identifier",
    "normalize_name",
    "parse_rules",
    "smart_list_create",
    "smart_list_delete",
    "smart_list_get",
    "smart_list_list",
    "smart_list_update",
    "tag_add_contact",
    "tag_create",
    "tag_delete",
    "tag_get",
    "tag_list",
    "tag_remove_contact",
    "tag_update",
]

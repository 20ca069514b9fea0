"""Edit distance between an original suggestion and the agent's revision."""


def edit_distance(source: str, target: str) -> int:
    """
    Levenshtein distance: the minimum number of single-character
    insertions, deletions and substitutions turning source into target.

    Standard DP recurrence, keeping only one row of the table so space
    is O(min(m, n)).
    """
    if len(source) < len(target):
        source, target = target, source

    # previous[j] = distance between source[:i-1] and target[:j]
    previous = list(range(len(target) + 1))
    for i, s_char in enumerate(source, start=1):
        current = [i] + [0] * len(target)
        for j, t_char in enumerate(target, start=1):
            if s_char == t_char:
                current[j] = previous[j - 1]
            else:
                current[j] = 1 + min(
                    previous[j],      # deletion
                    current[j - 1],   # insertion
                    previous[j - 1],  # substitution
                )
        previous = current

    return previous[len(target)]

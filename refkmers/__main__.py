"""refkmers CLI entry point.

Usage:
    refkmers <command> [<args>]
    python -m refkmers <command> [<args>]
"""

import difflib
import sys

COMMANDS = ["count", "motifs"]

USAGE = """\
usage: refkmers <command> [<args>]

refkmers: reference k-mer frequency matrices over genomic windows.

Commands:
  count       Count reference k-mers per window (dense .npy or sparse .npz)
  motifs      Print the motif universe (matrix column order) for small k

Use 'refkmers <command> -h' for help on a specific command.
"""


def _suggest(word, candidates, n=1, cutoff=0.6):
    """Return close matches for typo suggestions."""
    return difflib.get_close_matches(word, candidates, n=n, cutoff=cutoff)


def main(argv=None):
    args = argv if argv is not None else sys.argv[1:]

    if not args or args[0] in ("-h", "--help"):
        print(USAGE)
        sys.exit(0)

    cmd, rest = args[0], args[1:]

    if cmd == "count":
        from .pipeline import main as run
        run(rest)

    elif cmd == "motifs":
        from .motifs import main as run
        run(rest)

    else:
        msg = f"Unknown command: {cmd}"
        hint = _suggest(cmd, COMMANDS)
        if hint:
            msg += f"\n\nDid you mean: refkmers {hint[0]}?"
        print(msg)
        print(USAGE)
        sys.exit(1)


if __name__ == "__main__":
    main()

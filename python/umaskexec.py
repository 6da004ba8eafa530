#!/usr/bin/env python3
"""
Name: umaskexec
Description: execute a command with a given file mode creation mask
Author: Alexander Kozhevnikov, mentalisttraceur@gmail.com
License: 0BSD

Sets the file mode creation mask (umask) from an octal number such as
"027" or a chmod-style symbolic expression such as "go=rx,u+w", then
replaces itself with the given command. Without a command it prints the
mask that would be used; without a mask it prints the current one.
"""

import sys
import os
import re
import stat
import errno

# Constants
EX_SUCCESS = 0
EX_FAILURE = 1
VERSION = '1.0.0'

program_name = os.path.basename(sys.argv[0])

HELP_TEXT = """\
Execute a command with the given file mode creation mask.
If no mask is given, show the current mask.
If no command is given, show what mask would be used.

Usage:
    umaskexec [--symbolic | --] [<mask> [<command> [<argument>]...]]
    umaskexec (--help | --version) [<ignored>]...

Options:
    -h --help      show this help text
    -V --version   show version information
    -S --symbolic  show the mask symbolically instead of in octal
"""

ALL_BITS = stat.S_IRWXU | stat.S_IRWXG | stat.S_IRWXO

# Mask bits grouped by who they apply to...
WHO_BITS = {
    'u': stat.S_IRWXU,
    'g': stat.S_IRWXG,
    'o': stat.S_IRWXO,
    'a': ALL_BITS,
}

# ...and by permission type.
PERM_BITS = {
    'r': stat.S_IRUSR | stat.S_IRGRP | stat.S_IROTH,
    'w': stat.S_IWUSR | stat.S_IWGRP | stat.S_IWOTH,
    'x': stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH,
}

OCTAL_RE = re.compile(r'[0-7]+')
CLAUSE_RE = re.compile(r'([ugoa]*)((?:[-+=][rwx]*)+)')
ACTION_RE = re.compile(r'([-+=])([rwx]*)')


class MaskSyntaxError(ValueError):
    """Base class for the ways a mask expression can fail to parse."""

    def __init__(self, expression, reason):
        super().__init__(f"{reason}: '{expression}'")
        self.expression = expression


class InvalidOctalDigit(MaskSyntaxError):
    def __init__(self, expression):
        super().__init__(expression, "invalid octal digit")


class OctalOverflow(MaskSyntaxError):
    def __init__(self, expression, reason="octal mask out of range"):
        super().__init__(expression, reason)


class InvalidSymbolicSyntax(MaskSyntaxError):
    def __init__(self, expression, offset):
        super().__init__(expression, f"invalid symbolic mask at offset {offset}")
        self.offset = offset


class InvalidMaskExpression(ValueError):
    """Raised when a string is neither an octal nor a symbolic mask."""

    def __init__(self, expression):
        super().__init__(f"bad umask: {expression}")
        self.expression = expression


def parse_octal(mask_string: str) -> int:
    """
    Parses a mask written as 1 to 4 octal digits, e.g. "22" or "0027".
    Octal masks are absolute: the current mask plays no part.
    """
    if not OCTAL_RE.fullmatch(mask_string):
        raise InvalidOctalDigit(mask_string)

    if len(mask_string) > 4:
        raise OctalOverflow(mask_string, "too many octal digits")

    mask = int(mask_string, 8)
    if mask > ALL_BITS:
        raise OctalOverflow(mask_string)
    return mask


def apply_action(mask: int, target: int, operator: str, perms: int) -> int:
    """Applies one operator to the mask for the groups in target."""
    grant = perms & target

    if operator == '-':
        # Deny the named permissions.
        mask |= grant
    elif operator == '+':
        # Allow the named permissions.
        mask &= ~grant
    elif operator == '=':
        # Deny everything in the target groups, then allow what was named.
        mask = (mask | target) & ~grant

    return mask & ALL_BITS


def apply_symbolic(mask_string: str, mask: int) -> int:
    """
    Evaluates a chmod-style symbolic expression (e.g. "u=rwx,go-w")
    against a starting mask and returns the resulting mask.

    Clauses are applied left to right, each to the result of the one
    before. A clause may hold several actions for the same who letters,
    so "u+r-w" is the same as "u+r,u-w". Remember that the mask holds
    denied permissions: "+" clears bits and "-" sets them.

    Nothing is returned unless the whole expression is valid; the caller's
    mask is never partially updated.
    """
    new_mask = mask & ALL_BITS
    offset = 0

    for clause in mask_string.split(','):
        match = CLAUSE_RE.fullmatch(clause)
        if not match:
            raise InvalidSymbolicSyntax(mask_string, offset)

        who_str, actions = match.groups()
        target = 0
        for char in who_str:
            target |= WHO_BITS[char]
        if not target:
            target = ALL_BITS

        for operator, perm_str in ACTION_RE.findall(actions):
            perms = 0
            for char in perm_str:
                perms |= PERM_BITS[char]
            new_mask = apply_action(new_mask, target, operator, perms)

        offset += len(clause) + 1

    return new_mask


def read_process_umask() -> int:
    """
    Returns the current umask. The only way to read it is to set it, so
    the value read is put straight back.
    """
    mask = os.umask(0)
    os.umask(mask)
    return mask


def set_umask_from_expression(expression, read_mask=read_process_umask, commit_mask=os.umask):
    """
    Sets the umask from an octal or symbolic expression and returns it.

    The octal form is tried first. The current mask is only read if the
    symbolic form has to be tried, and commit_mask is called exactly once,
    after the expression has been fully accepted. On failure it raises
    InvalidMaskExpression and the mask is left alone.
    """
    try:
        new_mask = parse_octal(expression)
    except MaskSyntaxError:
        try:
            new_mask = apply_symbolic(expression, read_mask())
        except MaskSyntaxError as e:
            raise InvalidMaskExpression(expression) from e

    commit_mask(new_mask)
    return new_mask


def format_octal(mask: int) -> str:
    """Renders a mask the way the shell's umask builtin does, e.g. "0022"."""
    return f"0{mask & ALL_BITS:03o}"


def format_symbolic(mask: int) -> str:
    """Renders the permissions a mask allows, e.g. "u=rwx,g=rx,o=rx"."""
    clauses = []
    for who in 'ugo':
        allowed = ''.join(perm for perm in 'rwx'
                          if not mask & WHO_BITS[who] & PERM_BITS[perm])
        clauses.append(f"{who}={allowed}")
    return ','.join(clauses)


def write_output(text: str) -> int:
    """Writes a line to stdout, reporting any failure."""
    # Python leaves sys.stdout as None when started with fd 1 closed.
    if sys.stdout is None:
        print(f"{program_name}: error writing output: {os.strerror(errno.EBADF)}", file=sys.stderr)
        return EX_FAILURE

    try:
        sys.stdout.write(text + '\n')
        sys.stdout.flush()
    except OSError as e:
        print(f"{program_name}: error writing output: {e.strerror}", file=sys.stderr)
        return EX_FAILURE
    return EX_SUCCESS


def print_umask(symbolic: bool) -> int:
    mask = read_process_umask()
    return write_output(format_symbolic(mask) if symbolic else format_octal(mask))


def run(args) -> int:
    """Handles the command line and returns an exit status."""
    symbolic = False

    # --- 1. Without any arguments, just print the umask ---
    if not args:
        return print_umask(symbolic)

    # --- 2. The first argument may be an option ---
    arg = args[0]
    if arg.startswith('-'):
        if arg in ('-h', '--help'):
            return write_output(HELP_TEXT.rstrip('\n'))
        if arg in ('-V', '--version'):
            return write_output(f"umaskexec {VERSION}")

        if arg in ('-S', '--symbolic'):
            symbolic = True
        elif arg != '--':
            print(f"{program_name}: bad option: {arg}", file=sys.stderr)
            return EX_FAILURE

        args = args[1:]
        if not args:
            return print_umask(symbolic)

    # --- 3. Set the umask ---
    mask_string = args[0]
    try:
        set_umask_from_expression(mask_string)
    except InvalidMaskExpression as e:
        print(f"{program_name}: {e}", file=sys.stderr)
        return EX_FAILURE

    # --- 4. Execute the command, or show the new mask ---
    command = args[1:]
    if not command:
        return print_umask(symbolic)

    # os.execvp raises ValueError rather than OSError for an empty name.
    if not command[0]:
        print(f"{program_name}: error executing command: : {os.strerror(errno.ENOENT)}",
              file=sys.stderr)
        return EX_FAILURE

    try:
        os.execvp(command[0], command)
    except OSError as e:
        print(f"{program_name}: error executing command: {command[0]}: {e.strerror}",
              file=sys.stderr)
    return EX_FAILURE


def main(args=None):
    """Parses arguments, sets the umask and executes the command."""
    if args is None:
        args = sys.argv[1:]
    sys.exit(run(args))


if __name__ == '__main__':
    main()

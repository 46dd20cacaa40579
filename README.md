# minishell

A small interactive shell for POSIX systems. It reads command lines, expands
environment variables, and runs programs and builtins joined by pipes, with
file redirections and here-documents.

## Installing

```
pip install .
```

## Running

```
minishell
```

or, without installing the command:

```
python -m minishell.shell
```

A banner is printed, then a prompt of the form `user@host: /current/dir$ `.
Press Ctrl-D on an empty line to leave; the shell prints `exit` and ends with
status 0. Ctrl-C at the prompt gives a fresh line. When standard input is a
terminal and Python's `readline` module is available, lines are added to the
line-editing history.

## What it understands

- Words, with `'single'` and `"double"` quotes. The quotes are removed before
  the command runs. A line with an unclosed quote is rejected with
  `error open quotes`.
- `$NAME` expands to the variable's value and `$?` to the status of the last
  command. Nothing is expanded inside single quotes. A lone `$` stays as it
  is. A word that held a variable and expands to nothing is dropped.
- Pipes: `cmd1 | cmd2 | cmd3`.
- Redirections: `< file`, `> file`, `>> file`. Files created by `>` and `>>`
  get mode `0700`.
- Here-documents: `<< END` reads lines (with the prompt `> `) until `END`;
  `<<- END` also strips leading tabs from each line. Variables are expanded
  in the body.
- A redirection or pipe with nothing after it, one followed directly by
  another operator, or a pipe at the start of a line, is reported as
  `syntax error`.

## Builtins

| Command  | Behaviour |
|----------|-----------|
| `echo`   | prints its arguments separated by spaces; leading `-n` (or `-nnn`) arguments drop the trailing newline |
| `pwd`    | prints the working directory |
| `cd`     | changes directory; with no argument goes to `$HOME` (an error if `HOME` is not set); updates `PWD` and `OLDPWD` where they exist |
| `env`    | lists the variables that have a value |
| `export` | sets variables; with no argument lists all of them, sorted, as `declare -x` lines; stops at the first invalid name |
| `unset`  | removes variables; stops at the first invalid name |
| `exit`   | leaves the shell with an optional numeric status taken modulo 256; a non-numeric argument leaves with 255; with more than one argument it prints `too many arguments` and stays |

`echo`, `pwd`, `cd` and `env` are also recognised in any letter case.

A builtin on its own runs inside the shell, so `cd`, `export` and `unset`
change the session. Inside a pipeline a builtin works on a copy of the
variables, and its changes do not last.

Other commands are looked up in the directories of `$PATH`, or run directly
when the name contains a `/`. An unknown command prints `command not found`
and sets the status to 127; a command that cannot be started for lack of
permission sets 126.

At start-up `SHLVL` is increased by one (it is set to 1 if missing) and a
bare `OLDPWD` entry is added if there is none.

## Using it from Python

```python
from minishell.shell import Shell

shell = Shell({"PATH": "/usr/bin:/bin", "HOME": "/tmp"})
shell.run_line("export GREETING=hello")
shell.run_line("echo $GREETING | tr a-z A-Z")
print(shell.state.status)
```

`Shell` takes the starting variables and, optionally, a `reader` function
that is called with a prompt and returns a line or `None` at end of input;
it is used by `Shell.loop()` and for here-documents. `Shell.run_line()`
returns the status of the line and raises `minishell.builtins.ShellExit`
when the line runs `exit`.

The pieces can be used on their own:

```python
from minishell.tokens import parse

for token in parse("cat < in.txt | grep x > out.txt"):
    print(token.type.name, token.text)
```

- `minishell.tokens` — `parse()`, `tokenize()`, `validate()`, `Token`,
  `TokenType`, `ShellSyntaxError`, `UnclosedQuoteError`.
- `minishell.expand` — `expand()`, `strip_quotes()`, `expand_tokens()`.
- `minishell.environment` — `Environment`, the ordered table of variables.
- `minishell.builtins` — `ShellState`, `run_builtin()`, `is_builtin()` and
  each builtin as a function taking `(state, argv, out, err)`.
- `minishell.executor` — `build_commands()`, `run_pipeline()`,
  `find_executable()`, `read_heredoc()`.

## What it does not do

There is no `;`, `&&` or `||`, no background jobs or job control, no
wildcard expansion, no backslash escapes, no subshells, and no scripts: the
shell only reads lines interactively or through `Shell.run_line()`.

## Tests

```
pip install .[test]
pytest
```
#!/usr/bin/env python3
"""
recordstage CLI
Entry point for all CLI commands
"""

import argparse
import importlib
import sys
from pathlib import Path
from typing import Any, Dict

from ...core.exceptions import AppException

COMMANDS_PACKAGE = "recordstage.interfaces.cli.commands"


class CLIManager:
    def __init__(self):
        self.commands_dir = Path(__file__).parent / "commands"
        self.available_commands = self._discover_commands()

    def _discover_commands(self) -> Dict[str, Any]:
        """Discover every command module in the commands package"""
        commands = {}

        if not self.commands_dir.exists():
            return commands

        for file_path in sorted(self.commands_dir.glob("*.py")):
            if file_path.name.startswith("_") or file_path.stem == "base":
                continue

            module_name = file_path.stem
            module = importlib.import_module(f"{COMMANDS_PACKAGE}.{module_name}")
            if hasattr(module, "Command"):
                commands[module_name] = module.Command

        return commands

    def list_commands(self):
        """Print every available command"""
        print("Available commands:")
        print("=" * 40)

        if not self.available_commands:
            print("No commands found.")
            return

        for name, command_class in self.available_commands.items():
            print(f"  {name:<20} {command_class.description}")

    def run_command(self, command_name: str, args: list) -> int:
        """Run one command and return its exit status"""
        if command_name not in self.available_commands:
            print(f"Unknown command: {command_name}")
            print("Use 'recordstage help' to see available commands.")
            return 1

        command_instance = self.available_commands[command_name]()

        try:
            return command_instance.run(args)
        except AppException as e:
            print(f"Error running command '{command_name}': {e}")
            return 1


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="recordstage: stage extracted JSON pages into a warehouse",
        add_help=False,
    )
    parser.add_argument("command", nargs="?", help="Command to run")
    parser.add_argument("args", nargs=argparse.REMAINDER, help="Arguments for the command")

    args = parser.parse_args(argv)
    cli_manager = CLIManager()

    if not args.command or args.command == "help":
        if args.args:
            command_name = args.args[0]
            if command_name in cli_manager.available_commands:
                cli_manager.available_commands[command_name]().help()
            else:
                print(f"Unknown command: {command_name}")
                return 1
        else:
            print("recordstage CLI")
            print("Usage: recordstage <command> [args...]")
            print()
            cli_manager.list_commands()
            print()
            print("Use 'recordstage help <command>' for help on a specific command.")
        return 0

    return cli_manager.run_command(args.command, args.args)


if __name__ == "__main__":
    sys.exit(main())

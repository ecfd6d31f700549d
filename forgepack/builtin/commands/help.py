"""
help command: list registered commands or describe one.
"""


def _format_command(command):
    lines = [f"\n  Usage: {command.usage or 'forgepack ' + command.name}\n"]
    if command.description:
        lines.append(f"  {command.description}\n")
    if command.options:
        lines.append("  Options:\n")
        width = max(len(flag) for flag in command.options)
        for flag, description in command.options.items():
            lines.append(f"    {flag.ljust(width)}  {description}")
        lines.append("")
    if command.details:
        lines.append(f"  {command.details}")
    return "\n".join(lines)


def apply(api, options):
    def show_help(args):
        commands = api.service.commands
        positionals = args.get("_") or []
        name = positionals[0] if positionals else None

        if name and name in commands:
            output = _format_command(commands[name])
        else:
            width = max((len(n) for n in commands), default=0)
            lines = ["\n  Usage: forgepack <command> [options]\n", "  Commands:\n"]
            for command_name in sorted(commands):
                description = commands[command_name].description
                lines.append(f"    {command_name.ljust(width)}  {description}")
            lines.append("\n  run forgepack help [command] for usage of a specific command.\n")
            output = "\n".join(lines)

        print(output)
        return output

    api.register_command("help", {"description": "Show help"}, show_help)

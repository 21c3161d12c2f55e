from __future__ import annotations

from textual.widgets import TextArea

from ktsrun.core.error_locations import resolve_position

DEFAULT_SCRIPT = """\
// Sample Kotlin Script with Functions
// Note: main() is automatically called!

fun greet(name: String): String {
    return "Hello, $name!"
}

fun main() {
    println("--- Program Start ---")

    val names = listOf("Alice", "Bob", "Charlie")
    println("Greeting ${names.size} people:\\n")

    for (name in names) {
        println(greet(name))
        Thread.sleep(400)
    }

    println("\\n--- Program End ---")
}
"""


class ScriptEditor(TextArea):
    def __init__(self, text: str = DEFAULT_SCRIPT, *, id: str | None = None) -> None:
        super().__init__(
            text,
            show_line_numbers=True,
            tab_behavior="indent",
            id=id,
        )

    def goto_location(self, line: int, column: int) -> bool:
        """Move the cursor to a 1-based compiler location and select its line."""
        position = resolve_position(self.text, line, column)
        if position is None:
            return False
        row, col = position
        self.move_cursor((row, col), center=True)
        self.select_line(row)
        self.focus()
        return True

# cli.py: interactive terminal client with autocomplete
import os
import sys
from datetime import datetime
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.prompt import IntPrompt, Confirm, Prompt
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.text import Text
from rich import box

from prompt_toolkit import prompt
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.styles import Style as PromptStyle

from sdk.fizzpan import FizzpanClient
import requests

console = Console()
c = FizzpanClient(base_url=os.environ.get("FIZZPAN_URL", "http://127.0.0.1:8085"))


# Global state for status messages and caching
status_message = "Ready"
current_user: Optional[Dict[str, Any]] = None
product_cache: List[Dict[str, Any]] = []

ADMIN_SCREENS = ["users", "food-list", "order-list", "all-orders-list", "cart-list", "table-list"]
STATUSES = ["pending", "processing", "shipping", "delivered", "completed", "cancelled"]

# Custom prompt style for prompt_toolkit
custom_style = PromptStyle.from_dict({
    'completion-menu.completion': 'bg:#8d6e63 #ffffff',
    'completion-menu.completion.current': 'bg:#a1887f #000000',
    'scrollbar.background': 'bg:#bcaaa4',
    'scrollbar.button': 'bg:#222222',
})


def rupiah(amount: Any) -> str:
    return "Rp " + f"{float(amount or 0):,.0f}".replace(",", ".")


# ---------------------------
# Display helpers
# ---------------------------
def show_products(products: List[Dict[str, Any]]):
    if not products:
        console.print("[italic yellow]No products found[/italic yellow]")
        return

    table = Table(
        title="🐟 Menu",
        box=box.ROUNDED,
        header_style="bold cyan",
        title_style="bold magenta",
        show_lines=True
    )
    table.add_column("ID", style="dim", width=6)
    table.add_column("Name", style="bold", width=24)
    table.add_column("Price", justify="right", width=12)
    table.add_column("Stock", justify="right", width=8)
    table.add_column("Category", width=10)

    for p in products:
        table.add_row(
            str(p.get("id", "N/A")),
            p.get("name", "N/A"),
            rupiah(p.get("price")),
            str(p.get("stock", 0)),
            p.get("category") or "-"
        )
    console.print(table)


def show_cart(cart: Dict[str, Any]):
    if not cart:
        console.print("[italic yellow]No cart data[/italic yellow]")
        return

    title = Text()
    title.append("🛒 Cart", style="bold")
    title.append(f" - {cart.get('count', 0)} items", style="bold cyan")
    title.append(f" - Total: {rupiah(cart.get('total'))}", style="bold green")

    items = cart.get("items", [])
    if not items:
        console.print(Panel("Your cart is empty 🛍️", title=title, style="blue"))
        return

    table = Table(box=box.ROUNDED, header_style="bold blue", show_lines=True)
    table.add_column("Cart ID", style="dim", width=8)
    table.add_column("Product", style="bold", width=26)
    table.add_column("Qty", justify="right", width=6)
    table.add_column("Price", justify="right", width=12)
    table.add_column("Subtotal", justify="right", width=12)

    for it in items:
        product = it.get("product")
        if product is None:
            table.add_row(str(it.get("id")), "[red]Product no longer available[/red]",
                          str(it.get("quantity", 0)), "-", "-")
            continue
        table.add_row(
            str(it.get("id")),
            product.get("name", "Unknown"),
            str(it.get("quantity", 0)),
            rupiah(product.get("price")),
            rupiah(it.get("line_total"))
        )

    console.print(Panel(table, title=title, border_style="blue"))


def show_orders(orders: List[Dict[str, Any]], title: str = "📋 Your orders"):
    if not orders:
        console.print("[italic yellow]No orders found[/italic yellow]")
        return

    table = Table(title=title, box=box.ROUNDED, header_style="bold yellow", title_style="bold yellow",
                  show_lines=True)
    table.add_column("Order", style="dim", width=8)
    table.add_column("Contents", width=40)
    table.add_column("Status", width=12)
    table.add_column("Total", justify="right", width=14)
    table.add_column("Contact", width=22)

    for order in orders:
        items = order.get("items") or []
        names = []
        for it in items[:3]:
            product = it.get("product") or {}
            names.append(f"{product.get('name', 'Product ' + str(it.get('product_id', '?')))} x{it.get('quantity', 1)}")
        contents = ", ".join(names) if names else "-"
        if len(items) > 3:
            contents += f" +{len(items) - 3} more"

        status_style = "green" if order.get("status") in ("delivered", "completed") else "yellow"
        table.add_row(
            str(order.get("id", "N/A")),
            contents,
            f"[{status_style}]{order.get('status', 'N/A')}[/{status_style}]",
            rupiah(order.get("total_amount")),
            f"{order.get('contact_method') or '-'}: {order.get('contact_info') or '-'}"
        )

    console.print(table)


def show_page(page: Dict[str, Any]):
    rows = page.get("rows", [])
    title = (f"{page.get('page_name', 'rows')} - page {page.get('page', 0) + 1}"
             f"/{max(page.get('total_pages', 0), 1)} ({page.get('total', 0)} rows)")
    if not rows:
        console.print(Panel("[italic yellow]Nothing here yet[/italic yellow]", title=title))
        return

    columns = [k for k in rows[0].keys() if not isinstance(rows[0][k], (list, dict))][:7]
    table = Table(title=title, box=box.ROUNDED, header_style="bold cyan", show_lines=True)
    for col in columns:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*[str(row.get(col, ""))[:30] for col in columns])
    console.print(table)


def show_revenue(report: Dict[str, Any]):
    console.print(Panel.fit(
        f"💰 [bold]Revenue:[/bold] [green]{rupiah(report.get('total_revenue'))}[/green]\n"
        f"Orders: {report.get('total_orders', 0)} "
        f"(completed {report.get('completed_orders', 0)}, pending {report.get('pending_orders', 0)}, "
        f"cancelled {report.get('cancelled_orders', 0)})\n"
        f"Products: {report.get('total_products', 0)}  Users: {report.get('total_users', 0)}",
        title="📈 Revenue",
        border_style="green"
    ))
    recent = report.get("recent_orders") or []
    if recent:
        table = Table(title="Recent completed orders", box=box.SIMPLE)
        table.add_column("Order")
        table.add_column("Customer")
        table.add_column("Total", justify="right")
        for o in recent:
            table.add_row(str(o.get("id")), (o.get("profile") or {}).get("username") or "-",
                          rupiah(o.get("total_amount")))
        console.print(table)


def show_status(message: str, is_success: bool = True):
    style = "green" if is_success else "red"
    return Panel.fit(f"[{style}]{message}[/{style}]", title="Status")


# ---------------------------
# API wrapper with exception handling
# ---------------------------
def try_api(fn, *args, success_msg: Optional[str] = None, **kwargs):
    """
    Calls fn(*args, **kwargs) behind a spinner. Returns the result, or None after
    printing the error the service sent back.
    """
    global status_message
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
        ) as progress:
            progress.add_task(description="Processing...", total=None)
            result = fn(*args, **kwargs)

        if success_msg:
            status_message = success_msg
            console.print(show_status(success_msg, True))
        return result
    except requests.exceptions.HTTPError as e:
        try:
            body = e.response.json()
            detail = body.get("detail")
            if body.get("errors"):
                detail = f"{detail}: " + "; ".join(body["errors"].values())
        except ValueError:
            detail = e.response.text
        status_message = f"Error: {detail}"
        console.print(show_status(status_message, False))
        return None
    except requests.exceptions.RequestException as e:
        status_message = f"Error: {e}"
        console.print(show_status(status_message, False))
        return None


# ---------------------------
# Autocompletion helpers
# ---------------------------
def get_product_completer():
    global product_cache
    if not product_cache:
        product_cache = try_api(c.list_products) or []
    ids = [str(p.get("id", "")) for p in product_cache]
    return WordCompleter([i for i in ids if i], ignore_case=True,
                         meta_dict={str(p.get("id")): p.get("name", "") for p in product_cache})


def prompt_with_autocomplete(message: str, completer=None, default: str = ""):
    return prompt(f"{message} ", completer=completer, style=custom_style, default=default)


# ---------------------------
# Layout and Header
# ---------------------------
def create_header():
    header = Table(show_header=False, box=box.ROUNDED)
    header.add_column("left", width=30)
    header.add_column("center", width=40)
    header.add_column("right", width=30)

    now = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    who = f"{current_user['username']} ({current_user['role']})" if current_user else "not signed in"
    header.add_row(
        "🐟 Fizzpan Order",
        f"[bold blue]Signed in: {who}[/bold blue]",
        f"[dim]{now}[/dim]"
    )
    return Panel(header, style="bold blue")


# ---------------------------
# Sign in
# ---------------------------
def sign_in_flow():
    global current_user
    while current_user is None:
        if Confirm.ask("Do you have an account?", default=True):
            email = Prompt.ask("📧 Email")
            password = Prompt.ask("🔑 Password", password=True)
            resp = try_api(c.login, email, password, success_msg="Signed in")
        else:
            username = Prompt.ask("👤 Username")
            email = Prompt.ask("📧 Email")
            password = Prompt.ask("🔑 Password (min 6 characters)", password=True)
            confirm = Prompt.ask("🔑 Confirm password", password=True)
            resp = try_api(c.register, username, email, password, confirm, success_msg="Account created")
        if resp and resp.get("user"):
            current_user = resp["user"]


# ---------------------------
# Customer menu
# ---------------------------
def customer_action(choice: str) -> bool:
    global product_cache
    if choice == "1":
        category = prompt_with_autocomplete("Category (blank for all)",
                                            completer=WordCompleter(["sweet", "savory"]))
        products = try_api(c.list_products, category or None, success_msg="Menu loaded")
        if products is not None:
            product_cache = products
            show_products(products)

    elif choice == "2":
        pid = prompt_with_autocomplete("Enter product ID", completer=get_product_completer())
        qty = IntPrompt.ask("Enter quantity", default=1)
        cart = try_api(c.add_to_cart, pid, qty, success_msg=f"Added {qty} of product {pid} to cart")
        if cart:
            show_cart(cart)

    elif choice == "3":
        cart = try_api(c.view_cart, success_msg="Cart loaded")
        if cart:
            show_cart(cart)

    elif choice == "4":
        cart = try_api(c.view_cart)
        if cart:
            show_cart(cart)
        cart_id = prompt_with_autocomplete("Cart ID to change")
        qty = IntPrompt.ask("New quantity (0 removes the item)", default=1)
        if qty == 0:
            cart = try_api(c.remove_from_cart, cart_id, success_msg="Item removed")
        else:
            cart = try_api(c.update_cart_item, cart_id, qty, success_msg="Quantity updated")
        if cart:
            show_cart(cart)

    elif choice == "5":
        method = prompt_with_autocomplete("Contact via", completer=WordCompleter(["whatsapp", "instagram"]),
                                          default="whatsapp")
        contact = Prompt.ask("📞 WhatsApp number or Instagram handle")
        notes = Prompt.ask("📝 Notes", default="")
        r = try_api(c.checkout, contact, method, notes or None)
        if r is None:
            return True
        body = r.json()
        if r.status_code in (200, 201):
            order = body["order"]
            console.print(Panel.fit(
                f"[green]Order placed successfully![/green]\n"
                f"Order ID: [bold]{order['id']}[/bold]\n"
                f"Total: [bold]{rupiah(order['total_amount'])}[/bold]\n"
                f"{body.get('message', '')}",
                title="✅ Order Confirmation"
            ))
        else:
            console.print(Panel.fit(f"[red]Order failed:[/red] {body.get('detail', body)}", title="❌ Order Failed"))

    elif choice == "6":
        orders = try_api(c.list_orders, success_msg="Orders loaded")
        if orders is not None:
            show_orders(orders)

    else:
        return False
    return True


# ---------------------------
# Admin menu
# ---------------------------
def admin_action(choice: str) -> bool:
    if choice == "7":
        screen = prompt_with_autocomplete("Screen", completer=WordCompleter(ADMIN_SCREENS), default="users")
        page = try_api(c.admin_list, screen, success_msg=f"{screen} loaded")
        while page:
            show_page(page)
            action = Prompt.ask("[n]ext, [p]rev, [d]elete, [b]ack", choices=["n", "p", "d", "b"], default="b")
            if action == "b":
                break
            if action == "d":
                row_id = prompt_with_autocomplete("Row ID to delete",
                                                  completer=WordCompleter([str(r.get("id")) for r in page["rows"]]))
                if Confirm.ask(f"[red]Delete {screen} row {row_id}?[/red]"):
                    page = try_api(c.admin_delete, screen, row_id, success_msg=f"Row {row_id} deleted") or page
                continue
            step = 1 if action == "n" else -1
            page = try_api(c.admin_list, screen, page=max(page["page"] + step, 0)) or page

    elif choice == "8":
        name = Prompt.ask("🍽️ Product name")
        description = Prompt.ask("📝 Description")
        price = IntPrompt.ask("💰 Price (Rp)", default=15000)
        stock = IntPrompt.ask("📦 Stock", default=10)
        category = prompt_with_autocomplete("🏷️ Category", completer=WordCompleter(["sweet", "savory"]))
        image = Prompt.ask("🖼️ Image URL", default="")
        resp = try_api(c.add_food, name, description, price, stock, image, category or None,
                       success_msg=f"Product '{name}' added")
        if resp:
            console.print(Panel(f"Added product: [green]{resp['product']}[/green]"))

    elif choice == "9":
        order_id = Prompt.ask("Order ID")
        detail = try_api(c.get_order, order_id)
        if detail:
            show_orders([detail["order"]], title=f"Order {order_id}")
            status = prompt_with_autocomplete("New status", completer=WordCompleter(STATUSES))
            try_api(c.update_order_status, order_id, status, success_msg=f"Order {order_id} is now {status}")

    elif choice == "10":
        report = try_api(c.revenue, success_msg="Revenue loaded")
        if report:
            show_revenue(report)

    else:
        return False
    return True


# ---------------------------
# Main menu
# ---------------------------
def menu():
    global status_message, current_user, product_cache

    console.clear()
    console.print(create_header())
    sign_in_flow()
    is_admin = current_user.get("role") == "admin"

    while True:
        menu_table = Table.grid(padding=(0, 2))
        menu_table.add_column("Key", style="bold cyan", width=4)
        menu_table.add_column("Option", width=30)
        menu_table.add_column("Key", style="bold cyan", width=4)
        menu_table.add_column("Option", width=30)

        options = [
            ("1", "🐟 Browse menu", "4", "✏️ Change cart item"),
            ("2", "🛒 Add to cart", "5", "✅ Checkout"),
            ("3", "🛒 View cart", "6", "📋 My orders"),
        ]
        if is_admin:
            options += [
                ("7", "🗂️ Admin lists", "9", "🔄 Order status"),
                ("8", "➕ Add product", "10", "📈 Revenue"),
            ]
        options.append(("r", "♻️ Reset demo data", "q", "👋 Sign out & quit"))

        for row in options:
            menu_table.add_row(*row)

        console.print(Panel(menu_table, title="📋 Menu", border_style="yellow"))

        keys = [str(i) for i in range(1, 11 if is_admin else 7)] + ["r", "q", "quit", "exit"]
        choice = prompt_with_autocomplete("\nChoose an option", completer=WordCompleter(keys)).strip()

        if customer_action(choice):
            pass
        elif is_admin and admin_action(choice):
            pass
        elif choice == "r":
            if Confirm.ask("[red]This restores the seeded demo data and signs everyone out. Continue?[/red]"):
                console.print(try_api(c.reset, success_msg="Store reset successfully"))
                product_cache = []
                current_user = None
                sign_in_flow()
                is_admin = current_user.get("role") == "admin"
        elif choice.lower() in ("q", "quit", "exit"):
            if Confirm.ask("Are you sure you want to quit?"):
                try_api(c.logout)
                console.print(Panel.fit("[bold green]Terima kasih! 👋[/bold green]", title="Goodbye"))
                sys.exit(0)

        console.print()
        console.rule(style="dim")


if __name__ == "__main__":
    try:
        menu()
    except KeyboardInterrupt:
        console.print("\n\n[bold red]Interrupted by user[/bold red]")
        sys.exit(1)

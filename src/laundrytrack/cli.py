from __future__ import annotations

import asyncio
import contextlib

from .domain import STATUS_LABELS, STATUS_ORDER, next_status
from .errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from .records import format_ts
from .reports import status_counts, summary
from .services.audit_service import describe_changes
from .wiring import Services


async def _prompt(msg: str) -> str:
    # read in a thread so the change feed keeps running meanwhile
    return (await asyncio.to_thread(input, msg)).strip()


def _print_order(o) -> None:
    print(
        f"{o.order_id}  {STATUS_LABELS[o.status]:<16} {o.customer_name} "
        f"phone={o.phone} items={o.items} created={format_ts(o.created_at)}"
    )


async def run_cli(services: Services, user_id: str) -> None:
    orders = services.orders
    roles = services.roles

    await orders.refresh()
    watcher = asyncio.create_task(orders.watch())
    try:
        while True:
            print("\n=== LaundryTrack CLI ===")
            print("1) List orders")
            print("2) Create order")
            print("3) Advance order to next status")
            print("4) Delete order")
            print("5) Track order (public lookup)")
            print("6) Dashboard stats")
            print("7) List users and roles")
            print("8) Assign role")
            print("9) Remove role")
            print("10) Audit log")
            print("0) Exit")

            choice = await _prompt("> ")
            try:
                actor = await roles.actor_for(user_id)

                if choice == "0":
                    return

                elif choice == "1":
                    status = (await _prompt(f"status ({'/'.join(STATUS_ORDER)}/all) [all]: ")) or "all"
                    rows = orders.filter_by_status(status)
                    for o in rows:
                        _print_order(o)
                    print(f"{len(rows)} order(s)")

                elif choice == "2":
                    name = await _prompt("customer name: ")
                    phone = await _prompt("phone: ")
                    items_in = await _prompt("items: ")
                    try:
                        items = int(items_in)
                    except ValueError:
                        items = items_in
                    order = await orders.create_order(actor, customer_name=name, phone=phone, items=items)
                    print(f"Created order {order.order_id}")

                elif choice == "3":
                    order_id = await _prompt("order id: ")
                    order = await orders.get_order(order_id)
                    target = next_status(order.status)
                    if target is None:
                        print("Order is already delivered.")
                        continue
                    ok = (await _prompt(f"Move {order.order_id} to {STATUS_LABELS[target]}? (y/n): ")).lower()
                    if ok != "y":
                        continue
                    # guard against someone else having moved it meanwhile
                    order = await orders.advance_status(
                        actor, order.order_id, target, expected_status=order.status
                    )
                    print(f"Order {order.order_id} is now {STATUS_LABELS[order.status]}")

                elif choice == "4":
                    order_id = await _prompt("order id: ")
                    if (await _prompt(f"Delete {order_id}? (yes/no): ")).lower() != "yes":
                        continue
                    await orders.delete_order(actor, order_id)
                    print(f"Order {order_id} deleted")

                elif choice == "5":
                    order = await orders.lookup(await _prompt("order id: "))
                    print(f"{order.order_id} for {order.customer_name}: {STATUS_LABELS[order.status]}")
                    for e in order.status_history:
                        print(f"  {STATUS_LABELS[e.status]:<16} {format_ts(e.timestamp)}")

                elif choice == "6":
                    rows = orders.filter_by_status("all")
                    print(f"Summary: {summary(rows)}")
                    for status, n in status_counts(rows).items():
                        print(f"  {STATUS_LABELS[status]:<16} {n}")

                elif choice == "7":
                    for u in await roles.list_users(actor):
                        print(f"{u.user_id} {u.full_name or '-'} roles={','.join(u.roles) or '-'}")

                elif choice == "8":
                    target_user = await _prompt("user id: ")
                    role = (await _prompt("role (staff/admin): ")).lower()
                    await roles.assign_role(actor, target_user, role)
                    print(f"{role} role assigned to {target_user}")

                elif choice == "9":
                    target_user = await _prompt("user id: ")
                    role = (await _prompt("role (staff/admin): ")).lower()
                    await roles.remove_role(actor, target_user, role)
                    print(f"{role} role removed from {target_user}")

                elif choice == "10":
                    for e in await services.audit.list_entries(actor, limit=30):
                        print(
                            f"{format_ts(e.created_at)} {e.action:<6} {e.table_name}/{e.record_id} "
                            f"by {e.user_email}: {describe_changes(e)}"
                        )

                else:
                    print("Unknown choice.")

            except ValidationError as e:
                for field, msg in e.errors.items():
                    print(f"[INPUT ERROR] {field}: {msg}")
            except (InvalidTransitionError, ConflictError) as e:
                print(f"[STATUS ERROR] {e}")
            except NotFoundError as e:
                print(f"[NOT FOUND] {e}")
            except (AuthenticationError, AuthorizationError) as e:
                print(f"[DENIED] {e}")
            except PersistenceError as e:
                print(f"[DB ERROR] {e}")
    finally:
        watcher.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await watcher

from roguecore.sim.collaborators import CombatAI, LootTable, SettlementAI
from roguecore.sim.core import GameSession
from roguecore.sim.entities import Item, Player, equip_item, unequip_slot


def _sword() -> Item:
    return Item(kind="equip", name="iron sword", slot="hand", atk=2.0)


def _axe() -> Item:
    return Item(kind="equip", name="steel axe", slot="hand", atk=4.8, two_handed=True)


def test_one_handed_weapons_fill_free_hands_in_order() -> None:
    player = Player.new_game()
    player.inventory = [_sword(), _sword()]

    assert equip_item(player, 0) == "You equip iron sword (left)."
    assert equip_item(player, 0) == "You equip iron sword (right)."
    assert player.inventory == []


def test_two_handed_weapon_displaces_both_hands() -> None:
    player = Player.new_game()
    shield = Item(kind="equip", name="shield", slot="hand", defense=1.0)
    player.equipment["left"] = _sword()
    player.equipment["right"] = shield
    player.inventory = [_axe()]

    assert equip_item(player, 0) == "You equip steel axe (two-handed)."

    assert player.occupies_both_hands
    assert player.equipment["right"] is None
    assert [item.name for item in player.inventory] == ["iron sword", "shield"]


def test_one_handed_item_replaces_two_handed_weapon() -> None:
    player = Player.new_game()
    player.equipment["left"] = _axe()
    player.inventory = [_sword()]

    equip_item(player, 0, "right")

    assert player.equipment["left"] is None
    assert player.equipment["right"].name == "iron sword"
    assert [item.name for item in player.inventory] == ["steel axe"]


def test_armour_swaps_into_its_slot() -> None:
    player = Player.new_game()
    old = Item(kind="equip", name="rusty helmet", slot="head", defense=0.5)
    new = Item(kind="equip", name="iron helmet", slot="head", defense=1.0)
    player.equipment["head"] = old
    player.inventory = [new]

    assert equip_item(player, 0) == "You equip iron helmet (head)."
    assert player.inventory == [old]


def test_invalid_equip_requests_are_rejected() -> None:
    player = Player.new_game()

    assert equip_item(player, 0) is None
    assert equip_item(player, 99) is None
    player.inventory.append(_sword())
    assert equip_item(player, 2, "middle") is None
    assert unequip_slot(player, "tail") is None
    assert unequip_slot(player, "head") is None


def test_unequipping_either_hand_releases_two_handed_weapon() -> None:
    player = Player.new_game()
    player.equipment["left"] = _axe()

    assert unequip_slot(player, "right") == "You unequip steel axe (two-handed)."
    assert player.equipment["left"] is None
    assert player.inventory[-1].name == "steel axe"


def test_session_equip_takes_no_turn_and_torch_widens_sight() -> None:
    session = GameSession(3, combat_ai=CombatAI(), settlement_ai=SettlementAI(), loot_table=LootTable())
    session.player.inventory.append(Item(kind="equip", name="torch", slot="hand", atk=0.2))
    index = len(session.player.inventory) - 1

    assert session.visibility_radius() == 8
    assert session.equip(index) is True
    assert session.turn_counter == 0
    assert session.visibility_radius() == 9

    assert session.unequip("left") is True
    assert session.visibility_radius() == 8
    assert session.equip(0) is False
    assert session.log_lines[-1]["message"] == "You can't equip that."

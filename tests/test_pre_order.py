from martin_relay.services.pre_order import DEFAULT_QTY, DEFAULT_UNIT_PRICE, PreOrder, extract_pre_order


class TestExtractPreOrder:
    def test_plain_reply_has_no_pre_order(self):
        assert extract_pre_order("Temos erva-mate de 500g e 1kg.") == ("Temos erva-mate de 500g e 1kg.", None)

    def test_json_block_is_removed_and_parsed(self):
        reply = (
            "Perfeito, Ana!\nVOU_GERAR_PRE_PEDIDO\n"
            '{ "hotel":"Hotel Sol", "contact":"Ana", "qty":60, "unitPrice":18.5, "cnpj":"12.345.678/0001-90", "obs":"" }'
        )

        text, pre_order = extract_pre_order(reply)

        assert text == "Perfeito, Ana!"
        assert pre_order == PreOrder(
            hotel="Hotel Sol",
            contact="Ana",
            qty=60,
            unit_price=18.5,
            cnpj="12.345.678/0001-90",
            obs=None,
        )
        assert pre_order.total == 1110.0

    def test_marker_without_json_uses_defaults(self):
        text, pre_order = extract_pre_order("VOU_GERAR_PRE_PEDIDO")
        assert text == ""
        assert pre_order == PreOrder()
        assert (pre_order.qty, pre_order.unit_price) == (DEFAULT_QTY, DEFAULT_UNIT_PRICE)

    def test_broken_json_is_still_hidden(self):
        text, pre_order = extract_pre_order('VOU_GERAR_PRE_PEDIDO\n{ "hotel": "Hotel Sol", qty: }')
        assert text == ""
        assert pre_order == PreOrder()

    def test_bad_numbers_fall_back_to_defaults(self):
        _, pre_order = extract_pre_order('VOU_GERAR_PRE_PEDIDO {"hotel": "Pousada Azul", "qty": "muitos", "unitPrice": null}')
        assert pre_order.hotel == "Pousada Azul"
        assert pre_order.qty == DEFAULT_QTY
        assert pre_order.unit_price == DEFAULT_UNIT_PRICE

    def test_braces_without_marker_are_left_alone(self):
        reply = "Use o cupom {MATE10} no site."
        assert extract_pre_order(reply) == (reply, None)

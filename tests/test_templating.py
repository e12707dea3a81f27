from mailconnect.utils.templating import MessageTemplate, body_env, uses_placeholders


def test_only_recipient_placeholders_make_a_template():
    assert uses_placeholders("<p>Hi {{ name }}</p>", body_env)
    assert uses_placeholders("{% if email %}<p>{{ email }}</p>{% endif %}", body_env)
    assert not uses_placeholders("<p>Total: {{ price }}</p>", body_env)
    assert not uses_placeholders("<p>{{ broken </p>", body_env)
    assert not uses_placeholders("<p>No markup at all</p>", body_env)


def test_render_substitutes_and_escapes_body_values():
    template = MessageTemplate("Hi {{ name }}", "<p>{{ name }} at {{ email }}</p>")

    subject, body = template.render("dana@x.com", "<Dana>")

    assert subject == "Hi <Dana>"
    assert body == "<p>&lt;Dana&gt; at dana@x.com</p>"


def test_plain_text_is_returned_untouched():
    template = MessageTemplate("{{ promo }}", "<p>{% literally %} {{ code }}</p>")

    assert template.render("a@x.com") == ("{{ promo }}", "<p>{% literally %} {{ code }}</p>")


def test_missing_name_renders_empty():
    assert MessageTemplate("Hi {{ name }}!", "<p>x</p>").render("a@x.com")[0] == "Hi !"

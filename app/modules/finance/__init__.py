"""
Módulo Financiero

TRANSACCIONES:
- receita / despesa, con vínculo opcional a venta o compra (vinculo_id, vinculo_tipo)
- Estados: pendente → confirmada, pendente|confirmada → cancelada
- Saldo actual = receitas confirmadas - despesas confirmadas

ALMACENAMIENTO:
- Backend real: inserción con fechas seguras, luego inserción genérica
- Si el backend falla o no está configurado: almacén local JSON (IDs TRX001...)

GASTOS RECURRENTES:
- Periodicidad mensal/trimestral/semestral/anual
- Parcelas creadas en paralelo; las que fallan se informan sin deshacer las demás

CONTAS A PAGAR Y FLUXO DE CAIXA:
- Despesas pendentes con totales atrasado / próximos 7 días y filtros por vencimiento
- Flujo de caja por mes (mes, trimestre, año o período personalizado), sin canceladas

COMPROBANTES:
- Subida a MinIO; si el bucket niega el acceso se guardan como data URI
"""
